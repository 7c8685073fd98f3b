import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Deque, Dict, List, Optional, Protocol

from . import config
from .database import DocumentStore
from .errors import DispatchFailure, StoreUnavailable
from .schemas import Notification, Severity, Shift
from .status import format_timestamp

logger = logging.getLogger("painel.notifications")


@dataclass(frozen=True)
class UnwellAlert:
    name: str
    matricula: str
    shift: Shift
    time: Optional[datetime] = None

    @property
    def subject(self) -> str:
        return f"ALERTA DSS: {self.name} está mal"

    @property
    def body(self) -> str:
        return (
            "Um colaborador marcou o status \"ESTOU MAL\".\n\n"
            f"Nome: {self.name}\n"
            f"Matrícula: {self.matricula}\n"
            f"Turno: {self.shift.value}\n"
            f"Horário: {format_timestamp(self.time)}\n"
        )


class EmailDispatcher(Protocol):
    def send_unwell_alert(self, alert: UnwellAlert) -> None:
        ...


class OutboxDispatcher:
    """Queues alert emails in the notification collection for an external mailer."""

    def __init__(self, store: DocumentStore, recipient: str = config.ALERT_EMAIL_TO):
        self.store = store
        self.recipient = recipient

    def send_unwell_alert(self, alert: UnwellAlert) -> None:
        message = Notification(
            kind="unwell_alert",
            recipient=self.recipient,
            title=alert.subject,
            body=alert.body,
            created_at=datetime.now(timezone.utc),
        )
        try:
            self.store.create_document(config.COL_NOTIFICATIONS, message.model_dump())
        except StoreUnavailable as e:
            raise DispatchFailure(f"Falha ao enfileirar alerta: {e.message}") from e
        logger.info("Unwell alert queued for %s (%s)", alert.name, alert.matricula)


class Notifier:
    """
    Fire-and-forget user feedback.

    Messages are logged and kept in a short in-memory feed; notify never raises.
    """

    def __init__(self, maxlen: int = 50):
        self._feed: Deque[Dict] = deque(maxlen=maxlen)
        self._lock = threading.Lock()
        self._next_id = 1

    def notify(self, message: str, severity: Severity = "success") -> None:
        level = logging.INFO if severity == "success" else logging.WARNING
        logger.log(level, message)
        with self._lock:
            self._feed.append({"id": self._next_id, "message": message, "type": severity})
            self._next_id += 1

    def recent(self) -> List[Dict]:
        with self._lock:
            return list(self._feed)

    def dismiss(self, notification_id: int) -> None:
        with self._lock:
            self._feed = deque((n for n in self._feed if n["id"] != notification_id), maxlen=self._feed.maxlen)
