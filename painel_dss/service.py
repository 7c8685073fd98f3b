"""
Application service for the DSS panel.

Wires the status resolver, the registration rule and the report aggregator to
the document store, the email dispatcher and the user notification feed.
"""

import functools
import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional, Tuple

from . import config
from .database import DocumentStore, Snapshot
from .errors import NotFound, PainelError, PermissionDenied, ValidationError
from .notifications import EmailDispatcher, Notifier, OutboxDispatcher, UnwellAlert
from .registrations import (
    clear_registrations,
    delete_registration,
    list_registrations,
    upsert_registration,
)
from .report import build_mailto, build_report, compute_stats, render_html, render_text
from .schemas import DailyReport, Employee, ManualRegistration, PanelStats, Shift, StatusField
from .status import EmployeeStatus, resolve_transition

logger = logging.getLogger("painel.service")

RESET_FIELDS = {"ass_dss": False, "bem": False, "mal": False, "absent": False, "time": None}
MATRICULA_PATTERN = re.compile(r"[0-9]+")
EMPLOYEE_ORDER = [("name", 1)]


def _reported(method: Callable) -> Callable:
    """Push the message of a failed operation to the notification feed, then re-raise."""

    @functools.wraps(method)
    def wrapper(self: "PainelService", *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except PainelError as e:
            self.notifier.notify(e.message, "error")
            raise

    return wrapper


@dataclass(frozen=True)
class DashboardSnapshot:
    employees: Tuple[Employee, ...] = ()
    registrations: Tuple[ManualRegistration, ...] = ()
    stats: PanelStats = field(default_factory=PanelStats)
    report: Optional[DailyReport] = None

    @property
    def regular_team(self) -> Tuple[Employee, ...]:
        return tuple(e for e in self.employees if e.shift is Shift.REGULAR)

    @property
    def special_team(self) -> Tuple[Employee, ...]:
        return tuple(e for e in self.employees if e.shift is Shift.SPECIAL)

    def registration_for(self, shift: Shift) -> Optional[ManualRegistration]:
        return next((r for r in self.registrations if r.shift is shift), None)


class DashboardView:
    """
    Live view of the panel.

    Subscribes to the employee and registration collections and rebuilds an
    immutable DashboardSnapshot from every snapshot the store pushes.
    """

    def __init__(self, store: DocumentStore):
        self.store = store
        self.snapshot = DashboardSnapshot()
        self._employees: Tuple[Employee, ...] = ()
        self._registrations: Tuple[ManualRegistration, ...] = ()
        self._lock = threading.Lock()
        self._unsubscribers: List[Callable[[], None]] = []

    def start(self) -> "DashboardView":
        if not self._unsubscribers:
            self._unsubscribers = [
                self.store.subscribe(config.COL_EMPLOYEES, self._on_employees, sort=EMPLOYEE_ORDER),
                self.store.subscribe(config.COL_REGISTRATIONS, self._on_registrations),
            ]
        return self

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _on_employees(self, docs: Snapshot) -> None:
        employees = tuple(Employee.model_validate(dict(doc)) for doc in docs)
        with self._lock:
            self._employees = employees
            self._rebuild()

    def _on_registrations(self, docs: Snapshot) -> None:
        registrations = tuple(ManualRegistration.model_validate(dict(doc)) for doc in docs)
        with self._lock:
            self._registrations = registrations
            self._rebuild()

    def _rebuild(self) -> None:
        self.snapshot = DashboardSnapshot(
            employees=self._employees,
            registrations=self._registrations,
            stats=compute_stats(self._employees),
            report=build_report(self._employees, self._registrations),
        )


class PainelService:
    def __init__(
        self,
        store: DocumentStore,
        dispatcher: Optional[EmailDispatcher] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.store = store
        self.dispatcher = dispatcher or OutboxDispatcher(store)
        self.notifier = notifier or Notifier()
        self.view = DashboardView(store).start()

    # Employees

    def list_employees(self) -> List[Employee]:
        docs = self.store.get_documents(config.COL_EMPLOYEES, sort=EMPLOYEE_ORDER)
        return [Employee.model_validate(doc) for doc in docs]

    def get_employee(self, employee_id: str) -> Employee:
        try:
            return Employee.model_validate(self.store.get_by_id(config.COL_EMPLOYEES, employee_id))
        except NotFound:
            raise NotFound("Usuário não encontrado.")

    @_reported
    def toggle_status(self, employee_id: str, field: StatusField, is_admin: bool, confirmed: bool = False) -> Employee:
        employee = self.get_employee(employee_id)
        transition = resolve_transition(EmployeeStatus.from_document(employee.model_dump()), field, is_admin)
        if transition.became_unwell and not confirmed:
            raise ValidationError('Confirme a marcação de "ESTOU MAL" para continuar.')

        updated = Employee.model_validate(
            self.store.update_document(config.COL_EMPLOYEES, employee_id, transition.update)
        )
        logger.info("Status of %s: %s -> %s", updated.matricula, field, transition.checking)
        if transition.became_unwell:
            self._dispatch_unwell_alert(updated)
        return updated

    def _dispatch_unwell_alert(self, employee: Employee) -> None:
        alert = UnwellAlert(name=employee.name, matricula=employee.matricula, shift=employee.shift, time=employee.time)
        try:
            self.dispatcher.send_unwell_alert(alert)
        except Exception:
            logger.exception("Unwell alert for %s could not be dispatched", employee.matricula)

    @_reported
    def toggle_shift(self, employee_id: str) -> Employee:
        employee = self.get_employee(employee_id)
        shift = employee.shift.other
        updated = Employee.model_validate(
            self.store.update_document(config.COL_EMPLOYEES, employee_id, {"shift": shift.value})
        )
        action = "adicionado à" if shift is Shift.SPECIAL else "removido da"
        self.notifier.notify(f"{employee.name} {action} turma {Shift.SPECIAL.value}.")
        return updated

    @_reported
    def add_employee(self, name: str, matricula: str, is_admin: bool) -> Employee:
        if not is_admin:
            raise PermissionDenied("Apenas administradores podem adicionar usuários.")
        name = (name or "").strip().upper()
        matricula = (matricula or "").strip()
        if not name:
            raise ValidationError("Por favor, insira o nome.")
        if not MATRICULA_PATTERN.fullmatch(matricula):
            raise ValidationError("A matrícula deve conter apenas números.")
        if self.store.get_one(config.COL_EMPLOYEES, {"matricula": matricula}):
            raise ValidationError("Matrícula já existe.")

        doc = self.store.create_document(
            config.COL_EMPLOYEES,
            {"name": name, "matricula": matricula, **RESET_FIELDS, "shift": Shift.REGULAR.value},
        )
        self.notifier.notify(f"Usuário {name} adicionado com sucesso!")
        return Employee.model_validate(doc)

    @_reported
    def delete_employee(self, employee_id: str, is_admin: bool, confirmed: bool = False) -> Employee:
        if not is_admin:
            raise PermissionDenied("Apenas administradores podem deletar usuários.")
        employee = self.get_employee(employee_id)
        if not confirmed:
            raise ValidationError(
                f"Confirme a exclusão permanente de {employee.name}. Esta ação não pode ser desfeita."
            )
        self.store.delete_document(config.COL_EMPLOYEES, employee_id)
        self.notifier.notify(f"Usuário {employee.name} deletado com sucesso!")
        return employee

    @_reported
    def reset_day(self, is_admin: bool, include_registrations: bool = False) -> int:
        """Clear every employee's daily status in one batch. Returns the number of employees reset."""
        if not is_admin:
            raise PermissionDenied("Apenas administradores podem limpar os dados.")
        ids = [doc["_id"] for doc in self.store.get_documents(config.COL_EMPLOYEES)]
        count = self.store.batch_update(config.COL_EMPLOYEES, {doc_id: RESET_FIELDS for doc_id in ids})
        if include_registrations:
            clear_registrations(self.store, is_admin)
        self.notifier.notify("Dados de status diário foram limpos!")
        return count

    # Registrations

    def list_registrations(self) -> List[ManualRegistration]:
        return list_registrations(self.store)

    @_reported
    def register(self, shift: Shift, matricula: str, subject: str) -> ManualRegistration:
        registration = upsert_registration(self.store, shift, matricula, subject)
        self.notifier.notify(f"Registro para turno {shift.value} salvo com sucesso.")
        return registration

    @_reported
    def delete_registration(self, registration_id: str, is_admin: bool) -> None:
        try:
            delete_registration(self.store, registration_id, is_admin)
        except NotFound:
            raise NotFound("Registro não encontrado.")
        self.notifier.notify("Registro apagado.")

    # Reporting

    def stats(self) -> PanelStats:
        return compute_stats(self.list_employees())

    def report(self, report_date: Optional[date] = None) -> DailyReport:
        return build_report(self.list_employees(), self.list_registrations(), report_date)

    def report_text(self, report_date: Optional[date] = None) -> str:
        return render_text(self.report(report_date))

    def report_html(self, report_date: Optional[date] = None) -> str:
        return render_html(self.report(report_date))

    def report_mailto(self, recipient: str = config.REPORT_EMAIL_TO) -> Tuple[Optional[str], str]:
        """The mailto: link for today's report, or None when it is too long, with the report text."""
        report = self.report()
        text = render_text(report)
        return build_mailto(recipient, f"Relatório DSS - {report.report_date}", text), text
