"""
Excepciones del flujo clínico.

Cada fallo queda acotado a un registro o evento: ninguna excepción de este
módulo es fatal para el proceso. Los fallos blandos de facturación e
inventario NO son excepciones, se emiten como eventos.
"""

from typing import Any

from fastapi import status


class ClinicalWorkflowError(Exception):
    """Base de todos los errores del flujo clínico."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        code: str = "CLINICAL_WORKFLOW_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convierte la excepción a dict para respuestas de la API."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# ── Violaciones de precondición (422) ────────────────

class PreconditionViolation(ClinicalWorkflowError):
    """Operación rechazada sincrónicamente, sin mutar estado."""

    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT


class StageIncompletePrecondition(PreconditionViolation):
    """La etapa actual no cumple su predicado de completitud."""

    def __init__(self, stage: str, reason: str):
        super().__init__(
            message=f"La etapa {stage} está incompleta: {reason}",
            code="STAGE_INCOMPLETE",
            details={"stage": stage, "reason": reason},
        )
        self.stage = stage


class InvalidStageOperation(PreconditionViolation):
    """Operación no permitida en la etapa actual del encuentro."""

    def __init__(self, operation: str, stage: str):
        super().__init__(
            message=f"'{operation}' no está permitido en la etapa {stage}",
            code="INVALID_STAGE_OPERATION",
            details={"operation": operation, "stage": stage},
        )


class InvalidToothReference(PreconditionViolation):
    """Número FDI fuera del set válido para la dentición del paciente."""

    def __init__(self, tooth_id: str, dentition_mode: str):
        super().__init__(
            message=f"Diente FDI inválido para dentición {dentition_mode}: {tooth_id}",
            code="INVALID_TOOTH_REFERENCE",
            details={"tooth_id": tooth_id, "dentition_mode": dentition_mode},
        )


class MissingToothLocked(PreconditionViolation):
    """Un diente ausente no acepta ediciones hasta un reset explícito."""

    def __init__(self, tooth_id: str):
        super().__init__(
            message=f"El diente {tooth_id} está marcado como ausente; requiere reset",
            code="MISSING_TOOTH_LOCKED",
            details={"tooth_id": tooth_id},
        )


class InvalidTreatmentTransition(PreconditionViolation):
    """Transición de estado no válida para un registro de tratamiento."""

    def __init__(self, record_id: str, current: str, target: str):
        super().__init__(
            message=f"No se puede cambiar el tratamiento {record_id} de '{current}' a '{target}'",
            code="INVALID_TREATMENT_TRANSITION",
            details={"record_id": record_id, "current": current, "target": target},
        )


class BilledRecordImmutable(PreconditionViolation):
    """Campo financiero editado en un registro ya facturado."""

    def __init__(self, record_id: str, field: str):
        super().__init__(
            message=f"El tratamiento {record_id} ya fue facturado; '{field}' es inmutable",
            code="BILLED_RECORD_IMMUTABLE",
            details={"record_id": record_id, "field": field},
        )


class InvalidClinicalValue(PreconditionViolation):
    """Dato clínico vacío o fuera de rango."""

    def __init__(self, field: str, reason: str):
        super().__init__(
            message=f"Valor inválido para '{field}': {reason}",
            code="INVALID_CLINICAL_VALUE",
            details={"field": field, "reason": reason},
        )


class InvalidTriageAnswer(PreconditionViolation):
    """Respuesta fuera de rango para el nodo actual del árbol de triaje."""

    def __init__(self, node_id: str, answer: int, options: int):
        super().__init__(
            message=f"Respuesta {answer} inválida para '{node_id}' ({options} opciones)",
            code="INVALID_TRIAGE_ANSWER",
            details={"node_id": node_id, "answer": answer, "options": options},
        )


class IncompleteTriagePath(PreconditionViolation):
    """Las respuestas no llegan a un nodo terminal de severidad."""

    def __init__(self, node_id: str):
        super().__init__(
            message=f"El triaje terminó en la pregunta '{node_id}' sin severidad",
            code="INCOMPLETE_TRIAGE_PATH",
            details={"node_id": node_id},
        )


# ── Recursos no encontrados (404) ────────────────────

class ResourceNotFound(ClinicalWorkflowError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            message=f"{resource} no encontrado: {resource_id}",
            code="NOT_FOUND",
            details={"resource": resource, "id": resource_id},
        )


class EncounterNotFound(ResourceNotFound):
    def __init__(self, visit_id: str):
        super().__init__("Encuentro", visit_id)


class TreatmentRecordNotFound(ResourceNotFound):
    def __init__(self, record_id: str):
        super().__init__("Tratamiento", record_id)


class ComplicationNotFound(ResourceNotFound):
    def __init__(self, report_id: str):
        super().__init__("Reporte de complicación", report_id)
