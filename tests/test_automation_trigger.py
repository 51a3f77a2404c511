"""
Tests del trigger de automatización: facturación at-most-once,
deducciones de stock por BOM, recordatorios multi-sesión, impuestos y
aislamiento de suscriptores que fallan.
"""

import threading
from datetime import date, timedelta
from decimal import Decimal

from app.models.catalog import DEFAULT_TAX_PERCENT, BomLine, StockItem, TariffItem
from app.models.encounter import EncounterStage
from app.models.treatment_record import TreatmentCategory, TreatmentRecord
from app.schemas.events import (
    BillingLineItemRequested,
    FollowUpReminderRequested,
    LowStockWarning,
    PriceNotFound,
    ProcedureCompleted,
    StockDeductionRequested,
    StockDepletionError,
)


def _completed(clock, code="SIMPLE_EXTRACTION", teeth=None, **kwargs) -> TreatmentRecord:
    record = TreatmentRecord(
        patient_id="pat-001",
        visit_id="visit_test",
        doctor_id="doc-001",
        procedure_code=code,
        procedure_name=kwargs.pop("procedure_name", code.title()),
        category=kwargs.pop("category", TreatmentCategory.SURGICAL),
        teeth=teeth if teeth is not None else ["36"],
        **kwargs,
    )
    record.mark_completed(clock())
    return record


def _of_type(events, event_type):
    return [e for e in events if isinstance(e, event_type)]


# ── Facturación ──────────────────────────────────────

def test_billing_line_uses_tariff_and_teeth_count(runtime, clock):
    record = _completed(clock, teeth=["36", "37"])
    events = runtime.automation.on_procedure_completed(record)

    billing = _of_type(events, BillingLineItemRequested)
    assert len(billing) == 1
    assert billing[0].quantity == 2
    assert billing[0].unit_price == Decimal("1500")
    assert billing[0].amount == Decimal("3000")
    assert billing[0].description == "Exodoncia simple"
    assert isinstance(events[0], BillingLineItemRequested)


def test_procedure_without_teeth_bills_one_unit(runtime, clock):
    record = _completed(clock, code="SCALING", teeth=[])
    billing = _of_type(runtime.automation.on_procedure_completed(record), BillingLineItemRequested)
    assert billing[0].quantity == 1
    assert billing[0].amount == Decimal("1200")


def test_missing_price_emits_event_and_zero_line(runtime, clock):
    record = _completed(clock, code="LASER_WHITENING", procedure_name="Blanqueamiento láser")
    events = runtime.automation.on_procedure_completed(record)

    assert [e.event_type for e in events] == ["PriceNotFound", "BillingLineItemRequested"]
    line = _of_type(events, BillingLineItemRequested)[0]
    assert line.amount == Decimal("0")
    assert line.description == "Blanqueamiento láser"
    assert _of_type(events, PriceNotFound)[0].code == "LASER_WHITENING"


def test_record_not_completed_is_not_billed(runtime):
    record = TreatmentRecord(
        patient_id="pat-001",
        visit_id="visit_test",
        doctor_id="doc-001",
        procedure_code="SIMPLE_EXTRACTION",
        procedure_name="Exodoncia",
        category=TreatmentCategory.SURGICAL,
    )
    assert runtime.automation.on_procedure_completed(record) == []
    assert record.billed_already is False


def test_second_trigger_is_a_no_op(runtime, clock):
    record = _completed(clock)
    first = runtime.automation.on_procedure_completed(record)
    second = runtime.automation.on_procedure_completed(record)
    assert first
    assert second == []
    assert len(runtime.bus.events(event_type=BillingLineItemRequested)) == 1


def test_concurrent_triggers_bill_exactly_once(runtime, clock):
    record = _completed(clock)
    barrier = threading.Barrier(8)
    results = []

    def fire():
        barrier.wait()
        results.append(runtime.automation.on_procedure_completed(record))

    threads = [threading.Thread(target=fire) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(1 for r in results if r) == 1
    assert len(runtime.bus.events(event_type=BillingLineItemRequested)) == 1
    assert runtime.catalog.get_stock("GLOVES").current_stock == Decimal("198")


# ── Inventario ───────────────────────────────────────

def test_bom_lines_are_deducted(runtime, clock):
    record = _completed(clock)
    events = runtime.automation.on_procedure_completed(record)

    deductions = _of_type(events, StockDeductionRequested)
    assert [(d.consumable_code, d.quantity) for d in deductions] == [
        ("GLOVES", Decimal("2")),
        ("ANESTHETIC_CARTRIDGE", Decimal("1")),
        ("GAUZE", Decimal("4")),
    ]
    assert runtime.catalog.get_stock("GLOVES").current_stock == Decimal("198")
    assert runtime.catalog.get_stock("GAUZE").current_stock == Decimal("496")


def test_insufficient_stock_rejects_only_that_line(runtime, clock):
    runtime.catalog.upsert_stock(StockItem(
        code="GLOVES", name="Guantes", current_stock=Decimal("5"), min_stock=Decimal("1"),
    ))
    runtime.catalog.set_bom("COMPOSITE_RESTORATION", [
        BomLine(consumable_code="GLOVES", quantity=Decimal("10")),
        BomLine(consumable_code="COMPOSITE_SYRINGE", quantity=Decimal("1")),
    ])
    record = _completed(
        clock,
        code="COMPOSITE_RESTORATION",
        category=TreatmentCategory.RESTORATIVE,
        teeth=["16"],
    )
    events = runtime.automation.on_procedure_completed(record)

    depletion = _of_type(events, StockDepletionError)
    assert len(depletion) == 1
    assert depletion[0].consumable_code == "GLOVES"
    assert depletion[0].requested == Decimal("10")
    assert depletion[0].available == Decimal("5")
    assert runtime.catalog.get_stock("GLOVES").current_stock == Decimal("5")

    assert len(_of_type(events, BillingLineItemRequested)) == 1
    deductions = _of_type(events, StockDeductionRequested)
    assert [d.consumable_code for d in deductions] == ["COMPOSITE_SYRINGE"]
    assert runtime.catalog.get_stock("COMPOSITE_SYRINGE").current_stock == Decimal("24")


def test_repeated_bom_lines_share_projected_stock(runtime, clock):
    runtime.catalog.upsert_stock(StockItem(
        code="GAUZE", name="Gasa", current_stock=Decimal("5"), min_stock=Decimal("0"),
    ))
    runtime.catalog.set_bom("SIMPLE_EXTRACTION", [
        BomLine(consumable_code="GAUZE", quantity=Decimal("3")),
        BomLine(consumable_code="GAUZE", quantity=Decimal("3")),
    ])
    events = runtime.automation.on_procedure_completed(_completed(clock))

    assert len(_of_type(events, StockDeductionRequested)) == 1
    assert _of_type(events, StockDepletionError)[0].available == Decimal("2")
    assert runtime.catalog.get_stock("GAUZE").current_stock == Decimal("2")


def test_unknown_consumable_is_depleted(runtime, clock):
    runtime.catalog.set_bom("SCALING", [BomLine(consumable_code="ULTRASONIC_TIP", quantity=Decimal("1"))])
    events = runtime.automation.on_procedure_completed(_completed(clock, code="SCALING", teeth=[]))
    depletion = _of_type(events, StockDepletionError)
    assert depletion[0].consumable_code == "ULTRASONIC_TIP"
    assert depletion[0].available == Decimal("0")


def test_low_stock_warning_below_threshold(runtime, clock):
    runtime.catalog.upsert_stock(StockItem(
        code="IMPLANT_FIXTURE", name="Implante", current_stock=Decimal("2"), min_stock=Decimal("2"),
    ))
    record = _completed(clock, code="IMPLANT_PLACEMENT", teeth=["36"])
    warnings = _of_type(runtime.automation.on_procedure_completed(record), LowStockWarning)

    assert [(w.consumable_code, w.remaining, w.threshold) for w in warnings] == [
        ("IMPLANT_FIXTURE", Decimal("1"), Decimal("2")),
    ]
    assert [i.code for i in runtime.catalog.list_stock(low_stock_only=True)] == ["IMPLANT_FIXTURE"]


def test_no_warning_when_remaining_equals_threshold(runtime, clock):
    runtime.catalog.upsert_stock(StockItem(
        code="IMPLANT_FIXTURE", name="Implante", current_stock=Decimal("3"), min_stock=Decimal("2"),
    ))
    record = _completed(clock, code="IMPLANT_PLACEMENT", teeth=["36"])
    events = runtime.automation.on_procedure_completed(record)
    assert _of_type(events, LowStockWarning) == []


def test_concurrent_procedures_never_overdraw_stock(runtime, clock):
    runtime.catalog.upsert_stock(StockItem(
        code="GLOVES", name="Guantes", current_stock=Decimal("10"), min_stock=Decimal("0"),
    ))
    runtime.catalog.set_bom("SCALING", [BomLine(consumable_code="GLOVES", quantity=Decimal("2"))])
    records = [_completed(clock, code="SCALING", teeth=[]) for _ in range(8)]
    barrier = threading.Barrier(len(records))

    def fire(record):
        barrier.wait()
        runtime.automation.on_procedure_completed(record)

    threads = [threading.Thread(target=fire, args=(r,)) for r in records]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(runtime.bus.events(event_type=StockDeductionRequested)) == 5
    assert len(runtime.bus.events(event_type=StockDepletionError)) == 3
    assert runtime.catalog.get_stock("GLOVES").current_stock == Decimal("0")
    assert len(runtime.bus.events(event_type=BillingLineItemRequested)) == 8


# ── Multi-sesión ─────────────────────────────────────

def test_follow_up_defaults_to_configured_days(runtime, clock):
    record = _completed(
        clock, code="RCT", category=TreatmentCategory.ENDODONTIC,
        session_number=1, total_sessions=3,
    )
    reminders = _of_type(runtime.automation.on_procedure_completed(record), FollowUpReminderRequested)
    assert len(reminders) == 1
    assert reminders[0].next_session_number == 2
    assert reminders[0].total_sessions == 3
    assert reminders[0].target_date == (clock() + timedelta(days=7)).date()


def test_follow_up_uses_scheduled_date(runtime, clock):
    record = _completed(
        clock, code="RCT", category=TreatmentCategory.ENDODONTIC,
        session_number=2, total_sessions=3, next_session_date=date(2025, 3, 20),
    )
    reminders = _of_type(runtime.automation.on_procedure_completed(record), FollowUpReminderRequested)
    assert reminders[0].target_date == date(2025, 3, 20)


def test_last_session_has_no_follow_up(runtime, clock):
    record = _completed(
        clock, code="RCT", category=TreatmentCategory.ENDODONTIC,
        session_number=3, total_sessions=3,
    )
    events = runtime.automation.on_procedure_completed(record)
    assert _of_type(events, FollowUpReminderRequested) == []


# ── Impuestos ────────────────────────────────────────

def test_billing_line_applies_default_tax(runtime, clock):
    record = _completed(clock, teeth=["36", "37"])
    line = _of_type(runtime.automation.on_procedure_completed(record), BillingLineItemRequested)[0]

    assert line.tax_percent == DEFAULT_TAX_PERCENT == Decimal("18")
    assert line.amount == Decimal("3000")
    assert line.tax_amount == Decimal("540.00")
    assert line.total == Decimal("3540.00")


def test_billing_line_uses_tariff_tax_rate(runtime, clock):
    runtime.catalog.register_tariff(TariffItem(
        code="SIMPLE_EXTRACTION",
        name="Exodoncia simple",
        category=TreatmentCategory.SURGICAL,
        base_price=Decimal("1500"),
        tax_percent=Decimal("5"),
    ))
    record = _completed(clock)
    line = _of_type(runtime.automation.on_procedure_completed(record), BillingLineItemRequested)[0]

    assert line.tax_percent == Decimal("5")
    assert line.tax_amount == Decimal("75.00")
    assert line.total == Decimal("1575.00")


def test_tax_exempt_tariff_total_equals_amount(runtime, clock):
    runtime.catalog.register_tariff(TariffItem(
        code="CHECKUP",
        name="Control",
        category=TreatmentCategory.PREVENTIVE,
        base_price=Decimal("333.33"),
        tax_percent=Decimal("0"),
    ))
    record = _completed(clock, code="CHECKUP", teeth=[])
    line = _of_type(runtime.automation.on_procedure_completed(record), BillingLineItemRequested)[0]

    assert line.tax_amount == Decimal("0")
    assert line.total == Decimal("333.33")


def test_missing_price_line_has_zero_tax(runtime, clock):
    record = _completed(clock, code="LASER_WHITENING")
    line = _of_type(runtime.automation.on_procedure_completed(record), BillingLineItemRequested)[0]
    assert line.tax_percent == DEFAULT_TAX_PERCENT
    assert line.tax_amount == Decimal("0")
    assert line.total == Decimal("0")


# ── Reloj inyectado ──────────────────────────────────

def test_events_are_stamped_with_injected_clock(runtime, clock):
    clock.advance(hours=3, minutes=15)
    record = _completed(
        clock, code="RCT", category=TreatmentCategory.ENDODONTIC,
        session_number=1, total_sessions=2,
    )
    events = runtime.automation.on_procedure_completed(record)

    assert {type(e) for e in events} >= {
        BillingLineItemRequested, StockDeductionRequested, FollowUpReminderRequested,
    }
    assert all(e.occurred_at == clock() for e in events)


# ── Suscriptores que fallan ──────────────────────────

def test_failing_billing_subscriber_does_not_abort_completion(runtime, encounter_at):
    received = []

    def broken_billing_gateway(event):
        received.append(event)
        raise RuntimeError("gateway de facturación caído")

    runtime.bus.subscribe(BillingLineItemRequested, broken_billing_gateway)
    ctx = encounter_at(EncounterStage.EXECUTION)
    record = next(iter(ctx.treatments.values()))
    gloves_before = runtime.catalog.get_stock("GLOVES").current_stock

    completed = runtime.encounters.complete_procedure(ctx.visit_id, record.id)

    assert completed.billed_already
    assert len(received) == 1
    deductions = runtime.bus.events(visit_id=ctx.visit_id, event_type=StockDeductionRequested)
    assert deductions
    assert runtime.catalog.get_stock("GLOVES").current_stock < gloves_before
    assert runtime.bus.events(visit_id=ctx.visit_id, event_type=ProcedureCompleted)
