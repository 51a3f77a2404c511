"""
Trigger de automatización: procedimiento completado → línea de facturación,
deducciones de stock y recordatorio de sesión siguiente.

Garantía at-most-once por TreatmentRecord.id: el claim de billed_already
es un compare-and-set; el perdedor de la carrera no emite nada.
Los fallos de precio y stock se emiten como eventos, nunca se lanzan.
"""

import logging
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from app.core.clock import Clock, utcnow
from app.core.event_bus import EventBus
from app.models.catalog import DEFAULT_TAX_PERCENT
from app.models.treatment_record import TreatmentRecord, TreatmentStatus
from app.schemas.events import (
    BillingLineItemRequested,
    DomainEvent,
    FollowUpReminderRequested,
    LowStockWarning,
    PriceNotFound,
    StockDeductionRequested,
    StockDepletionError,
)
from app.services.catalog_service import CatalogService

logger = logging.getLogger(__name__)


def _round2(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class AutomationTrigger:
    def __init__(
        self,
        bus: EventBus,
        catalog: CatalogService,
        follow_up_days: int = 7,
        clock: Clock = utcnow,
    ) -> None:
        self.bus = bus
        self.catalog = catalog
        self.follow_up_days = follow_up_days
        self.clock = clock

    def on_procedure_completed(self, record: TreatmentRecord) -> list[DomainEvent]:
        """
        Emite los efectos de un procedimiento completado.

        Returns:
            Eventos emitidos, o lista vacía si el registro ya fue facturado.
        """
        if record.status != TreatmentStatus.COMPLETED:
            logger.warning(
                f"Tratamiento {record.id} en estado '{record.status.value}': no se factura"
            )
            return []

        if not record.claim_billing():
            logger.debug(f"Tratamiento {record.id} ya facturado, no-op")
            return []

        now = self.clock()
        events: list[DomainEvent] = []
        events.extend(self._billing_events(record, now))

        with self.catalog.stock_lock:
            events.extend(self._stock_events(record, now))
            reminder = self._follow_up(record, now)
            if reminder is not None:
                events.append(reminder)
            self.bus.publish_all(events)

        logger.info(
            f"Automatización de {record.procedure_code} (tratamiento {record.id}): "
            f"{len(events)} eventos emitidos"
        )
        return events

    # ── Facturación ──────────────────────────────────

    def _billing_events(self, record: TreatmentRecord, now: datetime) -> list[DomainEvent]:
        events: list[DomainEvent] = []
        tariff = self.catalog.get_tariff(record.procedure_code)
        if tariff is None:
            logger.warning(
                f"Precio no encontrado para {record.procedure_code}; "
                f"línea con monto cero (tratamiento {record.id})"
            )
            events.append(PriceNotFound(
                occurred_at=now,
                patient_id=record.patient_id,
                visit_id=record.visit_id,
                treatment_record_id=record.id,
                code=record.procedure_code,
            ))
            unit_price = Decimal("0")
            description = record.procedure_name
            tax_percent = DEFAULT_TAX_PERCENT
        else:
            unit_price = tariff.base_price
            description = tariff.name
            tax_percent = tariff.tax_percent

        quantity = record.quantity
        subtotal = unit_price * quantity
        tax_amount = _round2(subtotal * tax_percent / 100)
        events.append(BillingLineItemRequested(
            occurred_at=now,
            patient_id=record.patient_id,
            visit_id=record.visit_id,
            treatment_record_id=record.id,
            code=record.procedure_code,
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            amount=subtotal,
            tax_percent=tax_percent,
            tax_amount=tax_amount,
            total=_round2(subtotal + tax_amount),
        ))
        return events

    # ── Inventario ───────────────────────────────────

    def _stock_events(self, record: TreatmentRecord, now: datetime) -> list[DomainEvent]:
        """
        Una deducción por línea del BOM. Una línea sin stock suficiente se
        rechaza sola; las demás continúan.
        """
        events: list[DomainEvent] = []
        projected: dict[str, Decimal] = {}

        for line in self.catalog.bom_for(record.procedure_code):
            code = line.consumable_code
            item = self.catalog.get_stock(code)
            if code in projected:
                available = projected[code]
            else:
                available = item.current_stock if item is not None else Decimal("0")

            if line.quantity > available:
                logger.warning(
                    f"Stock agotado para {code}: disponible {available}, "
                    f"requerido {line.quantity} (tratamiento {record.id})"
                )
                events.append(StockDepletionError(
                    occurred_at=now,
                    patient_id=record.patient_id,
                    visit_id=record.visit_id,
                    treatment_record_id=record.id,
                    consumable_code=code,
                    requested=line.quantity,
                    available=available,
                ))
                continue

            remaining = available - line.quantity
            projected[code] = remaining
            events.append(StockDeductionRequested(
                occurred_at=now,
                patient_id=record.patient_id,
                visit_id=record.visit_id,
                treatment_record_id=record.id,
                consumable_code=code,
                quantity=line.quantity,
            ))

            if item is not None and remaining < item.min_stock:
                logger.warning(f"Stock bajo para {code}: {remaining} < min {item.min_stock}")
                events.append(LowStockWarning(
                    occurred_at=now,
                    patient_id=record.patient_id,
                    visit_id=record.visit_id,
                    treatment_record_id=record.id,
                    consumable_code=code,
                    remaining=remaining,
                    threshold=item.min_stock,
                ))
        return events

    # ── Multi-sesión ─────────────────────────────────

    def _follow_up(self, record: TreatmentRecord, now: datetime) -> FollowUpReminderRequested | None:
        if not record.is_multi_session or not record.session_number:
            return None
        if record.session_number >= record.total_sessions:
            return None

        target = record.next_session_date
        if target is None:
            target = (record.completed_at + timedelta(days=self.follow_up_days)).date()

        return FollowUpReminderRequested(
            occurred_at=now,
            patient_id=record.patient_id,
            visit_id=record.visit_id,
            treatment_record_id=record.id,
            procedure_code=record.procedure_code,
            next_session_number=record.session_number + 1,
            total_sessions=record.total_sessions,
            target_date=target,
        )
