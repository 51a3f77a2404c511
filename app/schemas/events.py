"""
Eventos emitidos por el núcleo clínico.

Todos llevan patient_id / visit_id para correlación. El núcleo nunca
aplica efectos de facturación ni inventario: solo los solicita mediante
estos eventos para que un colaborador externo los aplique.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from app.core.clock import utcnow
from app.schemas.clinical_index import ClinicalIndexSnapshot


class DomainEvent(BaseModel):
    event_id: UUID = Field(default_factory=uuid4)
    event_type: str
    occurred_at: datetime = Field(default_factory=utcnow)
    patient_id: str
    visit_id: str | None = None


# ── Encuentro ────────────────────────────────────────

class StageChanged(DomainEvent):
    event_type: Literal["StageChanged"] = "StageChanged"
    previous_stage: str
    new_stage: str
    reason: str | None = None


class ToothStateChanged(DomainEvent):
    event_type: Literal["ToothStateChanged"] = "ToothStateChanged"
    tooth_id: str
    previous_status: str
    new_status: str
    surfaces: list[str] = []


class ClinicalIndexSnapshotUpdated(DomainEvent):
    event_type: Literal["ClinicalIndexSnapshotUpdated"] = "ClinicalIndexSnapshotUpdated"
    snapshot: ClinicalIndexSnapshot


class ProcedureCompleted(DomainEvent):
    event_type: Literal["ProcedureCompleted"] = "ProcedureCompleted"
    treatment_record_id: str
    procedure_code: str
    teeth: list[str] = []
    completed_at: datetime


# ── Facturación e inventario ─────────────────────────

class BillingLineItemRequested(DomainEvent):
    event_type: Literal["BillingLineItemRequested"] = "BillingLineItemRequested"
    treatment_record_id: str
    code: str
    description: str = ""
    quantity: int = 1
    unit_price: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    tax_percent: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")


class PriceNotFound(DomainEvent):
    event_type: Literal["PriceNotFound"] = "PriceNotFound"
    treatment_record_id: str
    code: str


class StockDeductionRequested(DomainEvent):
    event_type: Literal["StockDeductionRequested"] = "StockDeductionRequested"
    treatment_record_id: str
    consumable_code: str
    quantity: Decimal


class LowStockWarning(DomainEvent):
    event_type: Literal["LowStockWarning"] = "LowStockWarning"
    treatment_record_id: str
    consumable_code: str
    remaining: Decimal
    threshold: Decimal


class StockDepletionError(DomainEvent):
    event_type: Literal["StockDepletionError"] = "StockDepletionError"
    treatment_record_id: str
    consumable_code: str
    requested: Decimal
    available: Decimal


class FollowUpReminderRequested(DomainEvent):
    event_type: Literal["FollowUpReminderRequested"] = "FollowUpReminderRequested"
    treatment_record_id: str
    procedure_code: str
    next_session_number: int
    total_sessions: int
    target_date: date


# ── Complicaciones / SLA ─────────────────────────────

class ComplicationClassified(DomainEvent):
    event_type: Literal["ComplicationClassified"] = "ComplicationClassified"
    report_id: str
    severity: str


class UrgentEscalation(DomainEvent):
    event_type: Literal["UrgentEscalation"] = "UrgentEscalation"
    report_id: str


class SlaReminderIssued(DomainEvent):
    event_type: Literal["SlaReminderIssued"] = "SlaReminderIssued"
    report_id: str
    level: int
    hours_elapsed: float


class SlaBreached(DomainEvent):
    event_type: Literal["SlaBreached"] = "SlaBreached"
    report_id: str
    sla_deadline: datetime
    penalty_applied: bool = False


class EscalationNotificationRequested(DomainEvent):
    """Mensaje a entregar por el canal indicado (push, sms, whatsapp)."""
    event_type: Literal["EscalationNotificationRequested"] = "EscalationNotificationRequested"
    report_id: str
    level: int
    action: str
    channel: str
    recipient: str
    message: str


class ComplicationResolved(DomainEvent):
    event_type: Literal["ComplicationResolved"] = "ComplicationResolved"
    report_id: str
    outcome: str
    after_escalation: bool = False
