"""Workflow step model.

A WorkflowStep is one transition recorded on a ticket. Steps are immutable once
normalized and are identified only by their ticket id and position in the
upload; the raw source row is kept verbatim alongside the normalized fields.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class WorkflowStep(BaseModel):
    """One normalized workflow transition"""

    ticket_id: str = Field(..., description="Ticket (application) identifier")
    department: str = Field("Unknown", description="Organizational unit")
    parent_service: str = Field("", description="Parent service name, may be empty")
    service_name: str = Field("Unknown", description="Service (flow) name")
    role: str = Field("Unknown", description="Post/role holding the step")
    zone: str = Field("Unknown", description="Zone identifier")
    employee_name: str = ""
    applicant_name: str = ""
    task_name: str = ""
    application_date: str = ""
    delivery_date: Optional[str] = None
    days_rested: float = Field(0.0, ge=0, description="Days the step rested with the role")
    remark: str = ""
    remark_from: str = Field("", description="Author/source tag of the remark")
    event_timestamp: str = ""
    raw: Dict[str, Any] = Field(default_factory=dict, description="Original row, verbatim")

    class Config:
        frozen = True  # Immutable once normalized

    @property
    def actor(self) -> str:
        """Who acted on this step: remark author, else the named employee"""
        return self.remark_from or self.employee_name or "Unknown"

    @property
    def is_completed(self) -> bool:
        return bool(self.delivery_date)

    @property
    def is_applicant_side(self) -> bool:
        """True when the remark was authored by the applicant/citizen"""
        source = self.remark_from.lower()
        return "applicant" in source or "citizen" in source
