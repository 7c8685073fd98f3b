import logging
from typing import List

from . import config
from .database import DocumentStore
from .errors import PermissionDenied, ValidationError
from .schemas import ManualRegistration, Shift

logger = logging.getLogger("painel.registrations")

DEFAULT_SUBJECT = "Não informado"


def upsert_registration(store: DocumentStore, shift: Shift, matricula: str, subject: str) -> ManualRegistration:
    """
    Save the subject of today's briefing for shift.

    There is at most one registration per shift: an existing one is overwritten
    in place, otherwise a new one is created. Concurrent calls race in the store
    and the last write wins.
    """
    matricula = (matricula or "").strip()
    if not matricula:
        raise ValidationError("Por favor, insira uma matrícula.")

    data = {
        "matricula": matricula,
        "subject": (subject or "").strip() or DEFAULT_SUBJECT,
        "shift": shift.value,
    }
    existing = store.get_one(config.COL_REGISTRATIONS, {"shift": shift.value})
    if existing:
        doc = store.update_document(config.COL_REGISTRATIONS, existing["_id"], data)
    else:
        doc = store.create_document(config.COL_REGISTRATIONS, data)
    logger.info("Registration for shift %s saved (matricula %s)", shift.value, matricula)
    return ManualRegistration.model_validate(doc)


def list_registrations(store: DocumentStore) -> List[ManualRegistration]:
    docs = store.get_documents(config.COL_REGISTRATIONS, sort=[("shift", -1)])
    return [ManualRegistration.model_validate(doc) for doc in docs]


def delete_registration(store: DocumentStore, registration_id: str, is_admin: bool) -> None:
    if not is_admin:
        raise PermissionDenied("Apenas administradores podem apagar registros.")
    store.delete_document(config.COL_REGISTRATIONS, registration_id)
    logger.info("Registration %s deleted", registration_id)


def clear_registrations(store: DocumentStore, is_admin: bool) -> int:
    if not is_admin:
        raise PermissionDenied("Apenas administradores podem apagar registros.")
    return store.delete_documents(config.COL_REGISTRATIONS)
