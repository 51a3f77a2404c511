"""
Endpoints de complicaciones post-operatorias: triaje, reportes,
resolución y barrido del SLA.
"""

from fastapi import APIRouter, Depends, Query

from app.runtime import ClinicRuntime, get_runtime
from app.schemas.complication import (
    ComplicationCreate,
    ComplicationResolve,
    ComplicationResponse,
    SlaSweepResponse,
    TriageNodeResponse,
)
from app.services.complication_service import TRIAGE_TREE, QuestionNode
from app.services.sla_service import report_to_response

router = APIRouter()


@router.get("/triage/tree", response_model=list[TriageNodeResponse])
async def get_triage_tree():
    """Árbol de triaje completo para el flujo de chat."""
    nodes = []
    for node in TRIAGE_TREE.values():
        if isinstance(node, QuestionNode):
            nodes.append(TriageNodeResponse(
                id=node.id,
                kind="question",
                prompt=node.prompt,
                options=[o.label for o in node.options],
            ))
        else:
            nodes.append(TriageNodeResponse(
                id=node.id,
                kind="severity",
                severity=node.severity,
                advice=node.advice,
            ))
    return nodes


@router.post("", response_model=ComplicationResponse, status_code=201)
async def report_complication(
    data: ComplicationCreate,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    """
    Clasifica la complicación con las respuestas del triaje y abre el SLA
    de 18 h. Emergencias se escalan de inmediato.
    """
    report = runtime.complications.report(
        patient_id=data.patient_id,
        answers=data.answers,
        visit_id=data.visit_id,
        reporter=data.reporter,
        symptom=data.symptom,
    )
    return report_to_response(report, runtime.sla.clock())


@router.get("", response_model=list[ComplicationResponse])
async def list_complications(
    open_only: bool = Query(False, description="Solo reportes sin resolver ni escalar"),
    runtime: ClinicRuntime = Depends(get_runtime),
):
    now = runtime.sla.clock()
    return [
        report_to_response(r, now)
        for r in runtime.complications.list_reports(open_only=open_only)
    ]


@router.get("/{report_id}", response_model=ComplicationResponse)
async def get_complication(report_id: str, runtime: ClinicRuntime = Depends(get_runtime)):
    return report_to_response(runtime.complications.get(report_id), runtime.sla.clock())


@router.post("/{report_id}/resolve", response_model=ComplicationResponse)
async def resolve_complication(
    report_id: str,
    data: ComplicationResolve,
    runtime: ClinicRuntime = Depends(get_runtime),
):
    report = runtime.sla.resolve(
        report_id, resolved_by=data.resolved_by, outcome=data.outcome, note=data.note
    )
    return report_to_response(report, runtime.sla.clock())


@router.post("/sla/sweep", response_model=SlaSweepResponse)
async def sweep_sla(runtime: ClinicRuntime = Depends(get_runtime)):
    """Ejecuta un barrido del SLA a demanda (el mismo que corre periódicamente)."""
    events = runtime.sla.evaluate()
    return SlaSweepResponse(
        emitted=len(events),
        events=[e.model_dump(mode="json") for e in events],
    )
