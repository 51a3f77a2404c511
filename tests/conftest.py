"""
Fixtures compartidas para Pytest.
Runtime clínico fresco por test, reloj controlable y cliente HTTP.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.config import Settings
from app.main import app
from app.models.dental_chart import ToothEvent, ToothStatus, ToothSurface
from app.models.encounter import EncounterContext, EncounterStage, PatientIdentity
from app.models.treatment_record import TreatmentCategory
from app.runtime import ClinicRuntime, build_runtime, get_runtime


class FakeClock:
    """Reloj manual: los tests avanzan el tiempo explícitamente."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def runtime(clock: FakeClock) -> ClinicRuntime:
    settings = Settings(
        LOAD_DEFAULT_CATALOG=True,
        FOLLOW_UP_DEFAULT_DAYS=7,
        NOTIFICATIONS_VIA_CELERY=False,
    )
    return build_runtime(settings, clock=clock)


@pytest_asyncio.fixture
async def client(runtime: ClinicRuntime) -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP de test que usa el runtime del test."""
    app.dependency_overrides[get_runtime] = lambda: runtime

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def adult() -> PatientIdentity:
    return PatientIdentity(patient_id="pat-001", name="Lucía Ramos", age=34)


@pytest.fixture
def child() -> PatientIdentity:
    return PatientIdentity(patient_id="pat-002", name="Mateo Díaz", age=4)


def drive_to(runtime: ClinicRuntime, ctx: EncounterContext, target: EncounterStage) -> None:
    """Avanza un encuentro hasta `target` cumpliendo cada predicado."""
    service = runtime.encounters
    visit_id = ctx.visit_id
    while ctx.stage != target:
        stage = ctx.stage
        if stage == EncounterStage.INTAKE:
            service.add_chief_complaint(visit_id, "Dolor en molar superior derecho")
        elif stage == EncounterStage.EXAMINATION and not ctx.chart.charted_teeth():
            service.record_tooth_event(visit_id, ToothEvent(
                tooth_id="16",
                status=ToothStatus.DECAYED,
                surfaces=frozenset({ToothSurface.OCCLUSAL, ToothSurface.MESIAL}),
            ))
        elif stage == EncounterStage.DIAGNOSIS:
            service.add_diagnosis(visit_id, "Caries dentinaria", icd_code="K02.1", teeth=["16"])
        elif stage == EncounterStage.TREATMENT_PLAN:
            service.plan_procedure(
                visit_id,
                procedure_code="COMPOSITE_RESTORATION",
                procedure_name="Restauración con resina",
                category=TreatmentCategory.RESTORATIVE,
                teeth=["16"],
            )
        elif stage == EncounterStage.EXECUTION:
            for record in list(ctx.treatments.values()):
                service.complete_procedure(visit_id, record.id)
        elif stage == EncounterStage.POST_OP:
            service.set_post_op_instructions(visit_id, "Evitar alimentos duros por 24 horas")
        service.advance(visit_id)


@pytest.fixture
def encounter_at(runtime: ClinicRuntime, adult: PatientIdentity):
    """Fábrica: encuentro de un adulto ya posicionado en la etapa pedida."""

    def _factory(stage: EncounterStage) -> EncounterContext:
        ctx = runtime.encounters.start_encounter(adult, doctor_id="doc-001")
        drive_to(runtime, ctx, stage)
        return ctx

    return _factory
