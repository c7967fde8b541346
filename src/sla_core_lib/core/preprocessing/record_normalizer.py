"""Record normalization.

Maps heterogeneous upload rows (varying header names, casing and spacing)
onto WorkflowStep. Malformed values are defaulted, never rejected.
"""

import logging
import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from sla_core_lib.models.workflow import WorkflowStep

logger = logging.getLogger(__name__)

# Field name -> accepted header aliases (compared after key normalization)
COLUMN_ALIASES: Dict[str, Sequence[str]] = {
    "ticket_id": ("Ticket ID", "TicketID", "ticket_id", "ApplicationNo"),
    "department": ("Department", "DepartmentName", "Dept"),
    "parent_service": ("ParentServiceName", "Parent Service", "ParentService"),
    "service_name": ("Service Name", "ServiceName", "FlowType"),
    "role": ("Post", "Role", "Designation"),
    "zone": ("ZoneID", "Zone", "ZoneName"),
    "employee_name": ("EmployeeName", "Employee Name", "PIC"),
    "applicant_name": ("ApplicantName", "Applicant Name"),
    "task_name": ("TaskName", "Task"),
    "application_date": ("Application Date", "ApplicationDate"),
    "delivery_date": ("DeliverdOn", "DeliveredOn", "Delivery Date"),
    "days_rested": ("TotalDaysRested", "DaysRested", "Days Rested"),
    "remark": ("LifeTimeRemarks", "Remarks", "Remark"),
    "remark_from": ("LifeTimeRemarksFrom", "RemarksFrom", "Remarks From"),
    "event_timestamp": ("MaxEventTimeStamp", "EventTimeStamp"),
}

_TEXT_DEFAULTS = {
    "ticket_id": "UNKNOWN",
    "department": "Unknown",
    "service_name": "Unknown",
    "role": "Unknown",
    "zone": "Unknown",
}

_NULL_MARKERS = {"null", "n/a", "none", "nan"}


def normalize_key(key: Any) -> str:
    """Header key used for alias matching: lowercase, no spaces/underscores"""
    return re.sub(r"[\s_]+", "", str(key)).lower()


_ALIAS_INDEX: Dict[str, str] = {
    normalize_key(alias): field_name
    for field_name, aliases in COLUMN_ALIASES.items()
    for alias in aliases
}


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    if text.lower() in _NULL_MARKERS:
        return ""
    return text


def parse_days(value: Any) -> float:
    """Tolerant numeric parse; invalid, non-finite or negative values become 0"""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = clean_text(value).replace(",", "")
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def normalize_row(row: Mapping[str, Any]) -> WorkflowStep:
    """Normalize one raw row into a WorkflowStep"""
    fields: Dict[str, Any] = {}
    for key, value in row.items():
        field_name = _ALIAS_INDEX.get(normalize_key(key))
        if field_name is None or field_name in fields:
            continue
        if field_name == "days_rested":
            fields[field_name] = parse_days(value)
        else:
            text = clean_text(value)
            if text:
                fields[field_name] = text

    for field_name, default in _TEXT_DEFAULTS.items():
        fields.setdefault(field_name, default)
    fields.setdefault("delivery_date", None)

    return WorkflowStep(raw=dict(row), **fields)


def normalize_rows(rows: Iterable[Mapping[str, Any]]) -> List[WorkflowStep]:
    """Normalize rows in order"""
    steps = [normalize_row(row) for row in rows]
    logger.debug(f"Normalized {len(steps)} workflow rows")
    return steps

