"""Hierarchical categorization of workflow steps.

Remarks are classified into the fixed DelayCategory set by ordered keyword
rules (first match wins). Steps are grouped into
Department → ParentService → Service → Ticket, in first-appearance order.
"""

import logging
import re
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from sla_core_lib.core.statistics import math_utils
from sla_core_lib.models.statistics import (
    DelayCategory,
    DepartmentNode,
    Hierarchy,
    HierarchyTicket,
    ParentServiceNode,
    ServiceNode,
)
from sla_core_lib.models.workflow import WorkflowStep

logger = logging.getLogger(__name__)


# Ordered: earlier rules take precedence
CATEGORY_RULES: Sequence[Tuple[DelayCategory, Sequence[str]]] = (
    (DelayCategory.DOCUMENTATION, (
        "document", "doc", "affidavit", "certificate", "missing paper", "incomplete",
        "invalid", "attested", "copy of", "upload", "registry", "patta", "noc",
    )),
    (DelayCategory.COMMUNICATION, (
        "not reachable", "no response", "not responding", "unclear", "clarification",
        "language", "contact", "call", "informed", "not understood",
    )),
    (DelayCategory.APPLICANT, (
        "applicant", "citizen", "payment pending", "fee", "demand", "late submission",
        "non-compliance", "not paid", "deposit",
    )),
    (DelayCategory.EXTERNAL, (
        "third party", "3rd party", "external", "electricity", "water supply", "utility",
        "bank", "other department", "clearance", "court order",
    )),
    (DelayCategory.COMPLEXITY, (
        "legal", "dispute", "court", "litigation", "policy", "stay", "encroachment",
        "special case", "exception",
    )),
    (DelayCategory.PROCESS, (
        "approval", "pending", "verification", "inspection", "site visit", "forwarded",
        "transfer", "sign", "committee", "survey", "report awaited",
    )),
    (DelayCategory.EMPLOYEE_SYSTEM, (
        "server", "system", "portal", "software", "technical", "leave", "not available",
        "officer", "staff", "follow up", "follow-up",
    )),
)


def _compile_rules() -> List[Tuple[DelayCategory, Pattern]]:
    compiled = []
    for category, keywords in CATEGORY_RULES:
        alternation = "|".join(re.escape(k) for k in keywords)
        compiled.append((category, re.compile(rf"\b(?:{alternation})", re.IGNORECASE)))
    return compiled


_COMPILED_RULES = _compile_rules()

_CATEGORY_LOOKUP: Dict[str, DelayCategory] = {}
for _category in DelayCategory:
    _CATEGORY_LOOKUP[_category.value.lower()] = _category
    _CATEGORY_LOOKUP[_category.value.split()[0].lower().rstrip("/-")] = _category
_CATEGORY_LOOKUP.update({
    "documentation": DelayCategory.DOCUMENTATION,
    "communication": DelayCategory.COMMUNICATION,
    "process": DelayCategory.PROCESS,
    "applicant": DelayCategory.APPLICANT,
    "employee": DelayCategory.EMPLOYEE_SYSTEM,
    "internal": DelayCategory.EMPLOYEE_SYSTEM,
    "system": DelayCategory.EMPLOYEE_SYSTEM,
    "external": DelayCategory.EXTERNAL,
    "complexity": DelayCategory.COMPLEXITY,
})


def categorize_remark(remark: Optional[str]) -> DelayCategory:
    """Rule-based category for a remark; no match is UNCATEGORIZED"""
    if not remark:
        return DelayCategory.UNCATEGORIZED
    for category, pattern in _COMPILED_RULES:
        if pattern.search(remark):
            return category
    return DelayCategory.UNCATEGORIZED


def coerce_category(value) -> Optional[DelayCategory]:
    """Map model output onto the fixed set, or None when it does not fit"""
    if not isinstance(value, str):
        return None
    text = value.strip().strip("[]").strip().lower()
    if not text:
        return None
    if text in _CATEGORY_LOOKUP:
        return _CATEGORY_LOOKUP[text]
    first_word = re.split(r"[\s/\-]+", text, maxsplit=1)[0]
    return _CATEGORY_LOOKUP.get(first_word)


def service_insight(service: ServiceNode) -> str:
    return (
        f"{service.name}: {service.step_count} steps across {len(service.tickets)} tickets, "
        f"average delay {service.avg_delay:.1f} days"
    )


class HierarchicalCategorizer:
    """Builds the four-level hierarchy with rule-assigned categories"""

    def build(self, steps: Sequence[WorkflowStep]) -> Hierarchy:
        departments: Dict[str, DepartmentNode] = {}
        parents: Dict[Tuple[str, str], ParentServiceNode] = {}
        services: Dict[Tuple[str, str, str], ServiceNode] = {}
        tickets: Dict[Tuple[str, str, str, str], HierarchyTicket] = {}
        service_days: Dict[Tuple[str, str, str], List[float]] = {}

        for step in steps:
            dept_name = step.department
            parent_name = step.parent_service or step.service_name
            service_name = step.service_name

            dept = departments.get(dept_name)
            if dept is None:
                dept = departments[dept_name] = DepartmentNode(name=dept_name)

            parent_key = (dept_name, parent_name)
            parent = parents.get(parent_key)
            if parent is None:
                parent = parents[parent_key] = ParentServiceNode(name=parent_name)
                dept.parent_services.append(parent)

            service_key = (dept_name, parent_name, service_name)
            service = services.get(service_key)
            if service is None:
                service = services[service_key] = ServiceNode(name=service_name)
                parent.services.append(service)
                service_days[service_key] = []
            service_days[service_key].append(step.days_rested)

            ticket_key = service_key + (step.ticket_id,)
            entry = tickets.get(ticket_key)
            if entry is None:
                entry = tickets[ticket_key] = HierarchyTicket(ticket_id=step.ticket_id)
                service.tickets.append(entry)
            # Latest non-empty remark and longest rest describe the ticket
            if step.remark:
                entry.remark = step.remark
            entry.role = step.role or entry.role
            entry.days_rested = max(entry.days_rested, step.days_rested)

        for entry in tickets.values():
            entry.detected_category = categorize_remark(entry.remark)

        for key, service in services.items():
            days = service_days[key]
            service.step_count = len(days)
            service.avg_delay = round(math_utils.mean(days), 2)
            service.insight = service_insight(service)

        logger.debug(
            f"Built hierarchy: {len(departments)} departments, {len(services)} services, "
            f"{len(tickets)} ticket entries"
        )
        return Hierarchy(departments=list(departments.values()))


def refinement_candidates(
    hierarchy: Hierarchy, delay_threshold: float
) -> List[Tuple[ServiceNode, HierarchyTicket]]:
    """(service, entry) pairs left uncategorized by the rules or resting beyond the threshold"""
    return [
        (service, ticket)
        for _, _, service, ticket in hierarchy.iter_tickets()
        if ticket.detected_category == DelayCategory.UNCATEGORIZED
        or ticket.days_rested > delay_threshold
    ]
