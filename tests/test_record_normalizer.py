"""Tests for upload-row normalization."""

import pytest

from sla_core_lib.core.preprocessing.record_normalizer import (
    normalize_key,
    normalize_row,
    normalize_rows,
    parse_days,
)


def test_header_aliases_are_case_space_and_underscore_insensitive():
    step = normalize_row({
        "Ticket ID": "JDA/2024/001",
        "department_name": "Planning",
        "PARENTSERVICENAME": "Building Permission",
        "service name": "Building Plan Approval",
        "Post": "Junior Engineer",
        "Zone ID": "Zone 3",
        "Employee Name": "A. Sharma",
        "LifeTimeRemarks": "Site inspection pending",
        "LifeTimeRemarksFrom": "A. Sharma",
        "TotalDaysRested": "12",
        "DeliverdOn": "03/15/2024",
        "MaxEventTimeStamp": "03/14/2024 10:22:01",
    })
    assert step.ticket_id == "JDA/2024/001"
    assert step.department == "Planning"
    assert step.parent_service == "Building Permission"
    assert step.service_name == "Building Plan Approval"
    assert step.role == "Junior Engineer"
    assert step.zone == "Zone 3"
    assert step.remark == "Site inspection pending"
    assert step.days_rested == 12.0
    assert step.delivery_date == "03/15/2024"
    assert step.event_timestamp == "03/14/2024 10:22:01"
    assert step.is_completed


def test_missing_fields_take_defaults():
    step = normalize_row({"Remarks": "NULL", "DaysRested": "n/a"})
    assert step.ticket_id == "UNKNOWN"
    assert step.department == "Unknown"
    assert step.service_name == "Unknown"
    assert step.role == "Unknown"
    assert step.zone == "Unknown"
    assert step.remark == ""
    assert step.days_rested == 0.0
    assert step.delivery_date is None
    assert not step.is_completed


def test_first_matching_alias_wins():
    step = normalize_row({"Remarks": "first", "Remark": "second"})
    assert step.remark == "first"


def test_raw_row_is_preserved_verbatim():
    row = {"Ticket ID": " T-9 ", "Custom Column": "kept"}
    step = normalize_row(row)
    assert step.ticket_id == "T-9"
    assert step.raw == row


@pytest.mark.parametrize("value,expected", [
    ("1,250", 1250.0),
    (" 7.5 ", 7.5),
    (3, 3.0),
    ("abc", 0.0),
    ("-4", 0.0),
    ("nan", 0.0),
    (float("inf"), 0.0),
    (None, 0.0),
    (True, 0.0),
])
def test_parse_days(value, expected):
    assert parse_days(value) == expected


def test_normalize_key():
    assert normalize_key("Days Rested") == normalize_key("days_rested") == "daysrested"


def test_normalize_rows_preserves_order():
    steps = normalize_rows([{"TicketID": "B"}, {"TicketID": "A"}, {"TicketID": "B"}])
    assert [s.ticket_id for s in steps] == ["B", "A", "B"]


def test_actor_prefers_remark_author():
    step = normalize_row({"EmployeeName": "Clerk", "RemarksFrom": "Reply from Applicant"})
    assert step.actor == "Reply from Applicant"
    assert step.is_applicant_side
    assert normalize_row({"EmployeeName": "Clerk"}).actor == "Clerk"
    assert normalize_row({}).actor == "Unknown"
