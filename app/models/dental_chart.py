"""
Odontograma del encuentro — estado actual de cada diente (FDI).

Un ToothState nunca se elimina, solo se sobrescribe. El historial se
reconstruye desde el log de procedimientos/visitas, no desde el diente.
"""

import enum
from dataclasses import dataclass, field, replace

from app.models.dentition import DentitionMode, valid_teeth


class ToothStatus(str, enum.Enum):
    """Estados dentales del odontograma."""
    HEALTHY = "healthy"
    DECAYED = "decayed"
    RESTORED = "restored"
    MISSING = "missing"
    ROOT_CANAL_TREATED = "root_canal_treated"
    IMPACTED = "impacted"
    CROWNED = "crowned"
    BRIDGED = "bridged"


class ToothSurface(str, enum.Enum):
    """Superficies dentales (notación estándar)."""
    MESIAL = "M"
    DISTAL = "D"
    OCCLUSAL = "O"  # oclusal / incisal
    BUCCAL = "B"  # vestibular / facial
    LINGUAL = "L"  # lingual / palatino


@dataclass(frozen=True)
class ToothState:
    tooth_id: str
    status: ToothStatus = ToothStatus.HEALTHY
    surfaces: frozenset[ToothSurface] = frozenset()
    notes: str = ""
    procedures: tuple[str, ...] = ()
    probing_code: int | None = None  # PSR 0-4

    @property
    def is_default(self) -> bool:
        return self == ToothState(tooth_id=self.tooth_id)

    def surface_codes(self) -> list[str]:
        return sorted(s.value for s in self.surfaces)

    def reset(self) -> "ToothState":
        return ToothState(tooth_id=self.tooth_id)

    def with_changes(self, **changes) -> "ToothState":
        return replace(self, **changes)


@dataclass(frozen=True)
class ToothEvent:
    """
    Edición del odontograma. Los campos en None no se modifican.
    reset=True restaura el estado por defecto antes de aplicar el resto.
    """
    tooth_id: str
    status: ToothStatus | None = None
    surfaces: frozenset[ToothSurface] | None = None
    notes: str | None = None
    probing_code: int | None = None
    procedure_id: str | None = None
    reset: bool = False


@dataclass
class DentalChart:
    dentition_mode: DentitionMode
    teeth: dict[str, ToothState] = field(default_factory=dict)

    @classmethod
    def for_mode(cls, mode: DentitionMode) -> "DentalChart":
        """Odontograma con estado por defecto para cada diente válido del modo."""
        return cls(
            dentition_mode=mode,
            teeth={t: ToothState(tooth_id=t) for t in sorted(valid_teeth(mode))},
        )

    def get(self, tooth_id: str) -> ToothState:
        return self.teeth.get(tooth_id) or ToothState(tooth_id=tooth_id)

    def with_tooth(self, state: ToothState) -> "DentalChart":
        """Copia del odontograma con un diente sobrescrito."""
        teeth = dict(self.teeth)
        teeth[state.tooth_id] = state
        return DentalChart(dentition_mode=self.dentition_mode, teeth=teeth)

    def charted_teeth(self) -> list[ToothState]:
        """Dientes que difieren del estado por defecto."""
        return [t for _, t in sorted(self.teeth.items()) if not t.is_default]
