"""
Unit tests for the report aggregator.
"""

from datetime import date
from itertools import product
from urllib.parse import parse_qs, urlparse

import pytest

from painel_dss.report import (
    build_mailto,
    build_report,
    build_report_text,
    classify,
    compute_stats,
    render_html,
    render_text,
)
from painel_dss.schemas import Employee, ManualRegistration, Shift

DAY = date(2026, 10, 19)


def make_employee(name, matricula, shift=Shift.REGULAR, **flags):
    return Employee(_id=f"id-{matricula}", name=name, matricula=matricula, shift=shift, **flags)


@pytest.fixture
def employees():
    return [
        make_employee("CARLOS", "3", ass_dss=True, bem=True),
        make_employee("ANA", "1", ass_dss=True, mal=True),
        make_employee("BRUNO", "2", absent=True),
        make_employee("DIEGO", "4", ass_dss=True),
        make_employee("ELISA", "5", Shift.SPECIAL, ass_dss=True, bem=True),
        make_employee("FABIO", "6", Shift.SPECIAL),
    ]


@pytest.fixture
def registrations():
    return [
        ManualRegistration(_id="r1", matricula="900", subject="Uso de EPI", shift=Shift.REGULAR),
        ManualRegistration(_id="r2", matricula="901", subject="Trabalho em altura", shift=Shift.SPECIAL),
    ]


class TestClassify:

    def test_unwell_wins(self):
        assert classify(make_employee("A", "1", ass_dss=True, bem=True, mal=True)) == "unwell"

    def test_ok_needs_signed_and_well(self):
        assert classify(make_employee("A", "1", ass_dss=True, bem=True)) == "ok"
        assert classify(make_employee("A", "1", bem=True)) == "pending"
        assert classify(make_employee("A", "1", ass_dss=True)) == "pending"

    def test_absent_is_pending(self):
        assert classify(make_employee("A", "1", absent=True)) == "pending"


class TestBuildReport:

    def test_totals(self, employees, registrations):
        report = build_report(employees, registrations, DAY)
        assert report.total == 6
        assert report.present == 3
        assert report.pending == 3
        assert report.report_date == "19/10/2026"

    def test_partition_by_shift(self, employees):
        regular, special = build_report(employees, report_date=DAY).shifts
        assert regular.shift is Shift.REGULAR
        assert [e.name for e in regular.ok] == ["CARLOS"]
        assert [e.name for e in regular.unwell] == ["ANA"]
        assert [e.name for e in regular.pending] == ["BRUNO", "DIEGO"]
        assert special.shift is Shift.SPECIAL
        assert [e.name for e in special.ok] == ["ELISA"]
        assert [e.name for e in special.pending] == ["FABIO"]

    def test_every_combination_lands_in_one_category(self):
        employees = [
            make_employee(f"E{i}", str(i), shift, ass_dss=a, bem=b, mal=m, absent=x)
            for i, (shift, a, b, m, x) in enumerate(product(Shift, *[[False, True]] * 4))
        ]
        report = build_report(employees, report_date=DAY)
        for shift_report in report.shifts:
            assert shift_report.total == 16
        assert report.total == len(employees)
        assert report.present + report.pending == report.total

    def test_registrations_grouped_by_shift(self, employees, registrations):
        regular, special = build_report(employees, registrations, DAY).shifts
        assert [r.subject for r in regular.registrations] == ["Uso de EPI"]
        assert [r.matricula for r in special.registrations] == ["901"]

    def test_sorted_by_name_regardless_of_input_order(self, employees):
        forward = build_report(employees, report_date=DAY)
        backward = build_report(list(reversed(employees)), report_date=DAY)
        assert forward == backward

    def test_empty(self):
        report = build_report([], [], DAY)
        assert (report.total, report.present, report.pending) == (0, 0, 0)


class TestRender:

    def test_text_layout(self, employees, registrations):
        text = build_report_text(employees, registrations, DAY)
        assert text.startswith("RELATÓRIO DSS - 19/10/2026")
        assert "- Total de Funcionários: 6" in text
        assert "- Presentes: 3" in text
        assert "- Pendentes/Ausentes: 3" in text
        assert "[ASS.DSS + ESTOU BEM - 1]\n- CARLOS (Matrícula: 3)" in text
        assert "[ESTOU MAL - 1]\n- ANA (Matrícula: 1)" in text
        assert "Assunto: Uso de EPI (Matrícula: 900)" in text
        assert text.index("EQUIPE TURNO 7H-19H") < text.index("EQUIPE TURNO 6H")

    def test_empty_categories(self):
        text = build_report_text([], [], DAY)
        assert "[ESTOU MAL - 0]\nNenhum" in text
        assert "Nenhum registro de assunto." in text

    def test_deterministic(self, employees, registrations):
        assert build_report_text(employees, registrations, DAY) == build_report_text(employees, registrations, DAY)

    def test_html_escapes(self, registrations):
        employees = [make_employee("JOSÉ <ADMIN>", "7", ass_dss=True, bem=True)]
        report = build_report(employees, registrations, DAY)
        out = render_html(report)
        assert out.startswith("<pre>") and out.endswith("</pre>")
        assert "JOSÉ &lt;ADMIN&gt;" in out
        assert render_text(report) in out.replace("&lt;", "<").replace("&gt;", ">")


class TestStats:

    def test_counts(self, employees):
        stats = compute_stats(employees)
        assert stats.total == 6
        assert stats.bem == 2
        assert stats.mal == 1
        assert stats.absent == 1


class TestMailto:

    def test_short_body(self):
        url = build_mailto("chefe@example.com", "Relatório DSS", "linha 1\nlinha 2")
        parsed = urlparse(url)
        assert parsed.scheme == "mailto"
        assert parsed.path == "chefe@example.com"
        query = parse_qs(parsed.query)
        assert query["subject"] == ["Relatório DSS"]
        assert query["body"] == ["linha 1\nlinha 2"]

    def test_too_long_falls_back(self):
        assert build_mailto("chefe@example.com", "x", "a" * 2500) is None

    def test_custom_limit(self):
        assert build_mailto("chefe@example.com", "x", "abc", limit=10) is None
