"""
Tests del motor de riesgo clínico y de la sugerencia de tarifas.
"""

from decimal import Decimal

import pytest

from app.core.exceptions import InvalidClinicalValue, InvalidStageOperation
from app.models.encounter import (
    AnesthesiaMode,
    AsaClass,
    EncounterStage,
    MaternityStatus,
    MedicationEntry,
    PatientIdentity,
    VitalsType,
)
from app.models.treatment_record import TreatmentCategory
from app.services.pricing_service import PricingContext, suggest_price
from app.services.risk_service import compute_risk_score, drug_risks, flag_medication


# ── Medicamentos ─────────────────────────────────────

@pytest.mark.parametrize(
    "name, flag",
    [
        ("Warfarin", "high_inr_risk"),
        ("ASPIRIN 100mg", "bleeding_risk"),
        ("warfarina sódica", "bleeding_risk"),
        ("Amlodipine", "gingival_hyperplasia"),
        ("denosumab", "onj_risk"),
    ],
)
def test_known_drugs_are_flagged(name, flag):
    assert flag in drug_risks(name).risks


@pytest.mark.parametrize("name", ["Paracetamol", "Amoxicilina", "   "])
def test_unknown_drugs_have_no_risk(name):
    assert drug_risks(name) is None


def test_flag_medication_keeps_entry_fields():
    entry = MedicationEntry(name="Clopidogrel", dosage="75 mg", frequency="cada 24 h")
    flagged, alerts = flag_medication(entry)
    assert flagged.dosage == "75 mg"
    assert flagged.risk_flags == ("bleeding_risk",)
    assert len(alerts) == 1

    plain, no_alerts = flag_medication(MedicationEntry(name="Ibuprofeno"))
    assert plain.risk_flags == ()
    assert no_alerts == ()


def test_add_medication_accumulates_alerts(runtime, adult):
    ctx = runtime.encounters.start_encounter(adult, doctor_id="doc-001")
    runtime.encounters.add_medication(ctx.visit_id, MedicationEntry(name="Warfarin", dosage="5 mg"))
    runtime.encounters.add_medication(ctx.visit_id, MedicationEntry(name="Paracetamol"))

    assert [m.name for m in ctx.medications] == ["Warfarin", "Paracetamol"]
    assert ctx.medications[0].risk_flags == ("bleeding_risk", "high_inr_risk")
    assert len(ctx.risk_alerts) == 1
    assert "INR" in ctx.risk_alerts[0]


def test_empty_medication_is_rejected(runtime, adult):
    ctx = runtime.encounters.start_encounter(adult, doctor_id="doc-001")
    with pytest.raises(InvalidClinicalValue):
        runtime.encounters.add_medication(ctx.visit_id, MedicationEntry(name="  "))


def test_risk_data_rejected_after_close(runtime, encounter_at):
    ctx = encounter_at(EncounterStage.CLOSED)
    with pytest.raises(InvalidStageOperation):
        runtime.encounters.add_medication(ctx.visit_id, MedicationEntry(name="Aspirin"))
    with pytest.raises(InvalidStageOperation):
        runtime.encounters.record_vitals(ctx.visit_id, bp_systolic=120)


# ── Signos vitales y factores ────────────────────────

def test_vitals_are_stamped_and_latest_wins(runtime, adult, clock):
    ctx = runtime.encounters.start_encounter(adult, doctor_id="doc-001")
    runtime.encounters.record_vitals(ctx.visit_id, kind=VitalsType.PRE_OP, bp_systolic=150)
    clock.advance(minutes=30)
    latest = runtime.encounters.record_vitals(ctx.visit_id, kind=VitalsType.POST_OP, bp_systolic=125)

    assert latest.recorded_at == clock()
    assert ctx.latest_vitals is latest
    assert len(ctx.vitals) == 2


def test_invalid_spo2_is_rejected(runtime, adult):
    ctx = runtime.encounters.start_encounter(adult, doctor_id="doc-001")
    with pytest.raises(InvalidClinicalValue):
        runtime.encounters.record_vitals(ctx.visit_id, spo2=130)
    assert ctx.vitals == []


def test_pregnancy_month_out_of_range(runtime, adult):
    ctx = runtime.encounters.start_encounter(adult, doctor_id="doc-001")
    with pytest.raises(InvalidClinicalValue):
        runtime.encounters.set_risk_factors(
            ctx.visit_id, maternity=MaternityStatus(is_pregnant=True, pregnancy_month=11)
        )


@pytest.mark.parametrize("month, trimester", [(2, 1), (4, 2), (6, 2), (8, 3)])
def test_trimester(month, trimester):
    assert MaternityStatus(is_pregnant=True, pregnancy_month=month).trimester == trimester


def test_not_pregnant_has_no_trimester():
    assert MaternityStatus(pregnancy_month=5).trimester is None


def test_risk_factors_update_only_given_fields(runtime, adult):
    ctx = runtime.encounters.start_encounter(adult, doctor_id="doc-001")
    runtime.encounters.set_risk_factors(ctx.visit_id, asa_class=AsaClass.III)
    runtime.encounters.set_risk_factors(ctx.visit_id, anesthesia_mode=AnesthesiaMode.GENERAL)
    assert ctx.asa_class == AsaClass.III
    assert ctx.anesthesia_mode == AnesthesiaMode.GENERAL


def test_surgical_extraction_requires_wars(runtime, encounter_at):
    ctx = encounter_at(EncounterStage.TREATMENT_PLAN)
    assert not ctx.wars_required
    runtime.encounters.plan_procedure(
        ctx.visit_id,
        procedure_code="SURGICAL_EXTRACTION",
        procedure_name="Exodoncia quirúrgica",
        category=TreatmentCategory.SURGICAL,
        teeth=["38"],
    )
    assert ctx.wars_required


# ── Puntaje de riesgo ────────────────────────────────

def _encounter(runtime, age=34):
    patient = PatientIdentity(patient_id="pat-900", name="Paciente Riesgo", age=age)
    return runtime.encounters.start_encounter(patient, doctor_id="doc-001")


@pytest.mark.parametrize("age, score", [(34, 5), (55, 15), (70, 25), (8, 20)])
def test_age_bands(runtime, age, score):
    assert compute_risk_score(_encounter(runtime, age)) == score


def test_bleeding_and_osteonecrosis_risks_add_up(runtime):
    ctx = _encounter(runtime)
    runtime.encounters.add_medication(ctx.visit_id, MedicationEntry(name="Aspirin"))
    runtime.encounters.add_medication(ctx.visit_id, MedicationEntry(name="Warfarin"))
    assert compute_risk_score(ctx) == 30

    runtime.encounters.add_medication(ctx.visit_id, MedicationEntry(name="Bisphosphonates"))
    assert compute_risk_score(ctx) == 60


def test_latest_vitals_drive_the_score(runtime):
    ctx = _encounter(runtime)
    runtime.encounters.record_vitals(ctx.visit_id, bp_systolic=165, spo2=93, heart_rate=110)
    assert compute_risk_score(ctx) == 50

    runtime.encounters.record_vitals(ctx.visit_id, bp_systolic=150, spo2=98, heart_rate=80)
    assert compute_risk_score(ctx) == 15


def test_pregnancy_anesthesia_and_asa(runtime):
    ctx = _encounter(runtime)
    runtime.encounters.set_risk_factors(
        ctx.visit_id,
        maternity=MaternityStatus(is_pregnant=True, pregnancy_month=5),
        anesthesia_mode=AnesthesiaMode.GENERAL,
        asa_class=AsaClass.III,
    )
    assert compute_risk_score(ctx) == 5 + 20 + 20 + 15


def test_asa_vi_adds_nothing(runtime):
    ctx = _encounter(runtime)
    runtime.encounters.set_risk_factors(ctx.visit_id, asa_class=AsaClass.VI)
    assert compute_risk_score(ctx) == 5


def test_score_is_capped_at_100(runtime):
    ctx = _encounter(runtime, age=72)
    runtime.encounters.add_medication(ctx.visit_id, MedicationEntry(name="Warfarin"))
    runtime.encounters.add_medication(ctx.visit_id, MedicationEntry(name="Denosumab"))
    runtime.encounters.set_risk_factors(
        ctx.visit_id, anesthesia_mode=AnesthesiaMode.GENERAL, asa_class=AsaClass.IV
    )
    assert compute_risk_score(ctx) == 100


# ── Sugerencia de tarifa ─────────────────────────────

@pytest.mark.parametrize(
    "canals, code, price, adjustment",
    [
        (4, "RCT_MC", Decimal("9600"), 20),
        (1, "RCT_SC", Decimal("7200"), -10),
        (2, "RCT", Decimal("8000"), 0),
    ],
)
def test_endodontic_canal_count(canals, code, price, adjustment):
    suggestion = suggest_price(PricingContext(
        procedure_code="RCT",
        base_price=Decimal("8000"),
        category=TreatmentCategory.ENDODONTIC,
        canal_count=canals,
    ))
    assert suggestion.suggested_code == code
    assert suggestion.suggested_price == price
    assert suggestion.adjustment_percent == adjustment


@pytest.mark.parametrize(
    "war_score, code, price",
    [
        (8, "SURGICAL_EXTRACTION", Decimal("2250")),
        (5, "COMPLEX_EXTRACTION", Decimal("1875")),
        (3, "SIMPLE_EXTRACTION", Decimal("1500")),
    ],
)
def test_extraction_war_score(war_score, code, price):
    suggestion = suggest_price(PricingContext(
        procedure_code="SIMPLE_EXTRACTION", base_price=Decimal("1500"), war_score=war_score,
    ))
    assert suggestion.suggested_code == code
    assert suggestion.suggested_price == price
    assert suggestion.original_price == Decimal("1500")


def test_material_surcharge_with_complex_case():
    suggestion = suggest_price(PricingContext(
        procedure_code="CROWN",
        base_price=Decimal("10000"),
        material="Zirconia monolítica",
        complexity="complex",
    ))
    assert suggestion.adjustment_percent == 45
    assert suggestion.suggested_price == Decimal("14500")
    assert suggestion.reason == "Recargo por material: zirconia + recargo por caso complejo"


def test_standard_price_is_rounded_to_units():
    suggestion = suggest_price(PricingContext(
        procedure_code="RCT", base_price=Decimal("999"), canal_count=1,
    ))
    assert suggestion.suggested_price == Decimal("899")

    standard = suggest_price(PricingContext(procedure_code="SCALING", base_price=Decimal("1200")))
    assert standard.reason == "Tarifa estándar"
    assert standard.suggested_price == Decimal("1200")
