"""
Report Aggregator

Partitions the day's employees by shift, classifies each one into exactly one
status category and renders the daily DSS report as plain text or HTML.
"""

import html
from datetime import date
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote, urlencode

from . import config
from .schemas import (
    DailyReport,
    Employee,
    EmployeeLine,
    ManualRegistration,
    PanelStats,
    RegistrationLine,
    Shift,
    ShiftReport,
)

SEPARATOR = "-" * 50

SHIFT_TITLES = {
    Shift.REGULAR: "EQUIPE TURNO 7H-19H",
    Shift.SPECIAL: "EQUIPE TURNO 6H",
}

CATEGORY_OK = "ok"
CATEGORY_UNWELL = "unwell"
CATEGORY_PENDING = "pending"


def classify(employee: Employee) -> str:
    """Unwell wins over ok; everything that is neither is pending/absent."""
    if employee.mal:
        return CATEGORY_UNWELL
    if employee.ass_dss and employee.bem:
        return CATEGORY_OK
    return CATEGORY_PENDING


def _sort_key(employee: Employee):
    return (employee.name.casefold(), employee.matricula)


def build_report(
    employees: Iterable[Employee],
    registrations: Iterable[ManualRegistration] = (),
    report_date: Optional[date] = None,
) -> DailyReport:
    report_date = report_date or date.today()
    by_shift: Dict[Shift, ShiftReport] = {shift: ShiftReport(shift=shift) for shift in Shift}

    for employee in sorted(employees, key=_sort_key):
        line = EmployeeLine(name=employee.name, matricula=employee.matricula)
        getattr(by_shift[employee.shift], classify(employee)).append(line)

    for reg in registrations:
        by_shift[reg.shift].registrations.append(RegistrationLine(matricula=reg.matricula, subject=reg.subject))

    shifts = [by_shift[Shift.REGULAR], by_shift[Shift.SPECIAL]]
    total = sum(s.total for s in shifts)
    present = sum(len(s.ok) + len(s.unwell) for s in shifts)
    return DailyReport(
        report_date=report_date.strftime("%d/%m/%Y"),
        total=total,
        present=present,
        pending=total - present,
        shifts=shifts,
    )


def _employee_block(title: str, lines: List[EmployeeLine]) -> List[str]:
    out = [f"[{title} - {len(lines)}]"]
    if not lines:
        out.append("Nenhum")
    out.extend(f"- {line.name} (Matrícula: {line.matricula})" for line in lines)
    out.append("")
    return out


def render_text(report: DailyReport) -> str:
    lines = [
        f"RELATÓRIO DSS - {report.report_date}",
        "",
        "RESUMO GERAL",
        SEPARATOR,
        f"- Total de Funcionários: {report.total}",
        f"- Presentes: {report.present}",
        f"- Pendentes/Ausentes: {report.pending}",
        "",
    ]
    for shift_report in report.shifts:
        lines += [SHIFT_TITLES[shift_report.shift], SEPARATOR]
        lines += _employee_block("ASS.DSS + ESTOU BEM", shift_report.ok)
        lines += _employee_block("ESTOU MAL", shift_report.unwell)
        lines += _employee_block("PENDENTES/AUSENTES", shift_report.pending)
        lines.append("[ASSUNTO DSS]")
        if not shift_report.registrations:
            lines.append("Nenhum registro de assunto.")
        for reg in shift_report.registrations:
            lines.append(f"Assunto: {reg.subject} (Matrícula: {reg.matricula})")
        lines += ["", SEPARATOR, ""]
    return "\n".join(lines)


def render_html(report: DailyReport) -> str:
    return f"<pre>{html.escape(render_text(report))}</pre>"


def build_report_text(
    employees: Iterable[Employee],
    registrations: Iterable[ManualRegistration] = (),
    report_date: Optional[date] = None,
) -> str:
    return render_text(build_report(employees, registrations, report_date))


def compute_stats(employees: Iterable[Employee]) -> PanelStats:
    stats = PanelStats()
    for employee in employees:
        stats.total += 1
        stats.bem += employee.bem
        stats.mal += employee.mal
        stats.absent += employee.absent
    return stats


def build_mailto(recipient: str, subject: str, body: str, limit: int = config.MAILTO_MAX_LENGTH) -> Optional[str]:
    """
    mailto: URL prefilled with subject and body.

    Returns None when the encoded URL is longer than limit; mail clients
    truncate such links, so the caller falls back to copying the text.
    """
    query = urlencode({"subject": subject, "body": body}, quote_via=quote)
    url = f"mailto:{quote(recipient, safe='@')}?{query}"
    if len(url) > limit:
        return None
    return url
