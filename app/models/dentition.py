"""
Notación FDI y modo de dentición.

Adultos: 11-18, 21-28, 31-38, 41-48.
Deciduos: 51-55, 61-65, 71-75, 81-85.
Los dientes se identifican con el string de dos dígitos ("11", "85").
"""

import enum


class DentitionMode(str, enum.Enum):
    ADULT = "ADULT"
    MIXED = "MIXED"
    CHILD = "CHILD"


class Arch(str, enum.Enum):
    MAXILLARY = "maxillary"
    MANDIBULAR = "mandibular"


def _quadrant_teeth(quadrants: range, positions: range) -> frozenset[str]:
    return frozenset(f"{q}{p}" for q in quadrants for p in positions)


PERMANENT_TEETH = _quadrant_teeth(range(1, 5), range(1, 9))
DECIDUOUS_TEETH = _quadrant_teeth(range(5, 9), range(1, 6))
THIRD_MOLARS = frozenset({"18", "28", "38", "48"})

# Orden de arco de derecha a izquierda del paciente (vista clínica)
MAXILLARY_ARCH_ORDER: tuple[str, ...] = (
    "18", "17", "16", "15", "14", "13", "12", "11",
    "21", "22", "23", "24", "25", "26", "27", "28",
)
MANDIBULAR_ARCH_ORDER: tuple[str, ...] = (
    "48", "47", "46", "45", "44", "43", "42", "41",
    "31", "32", "33", "34", "35", "36", "37", "38",
)

SEXTANTS: tuple[str, ...] = ("S1", "S2", "S3", "S4", "S5", "S6")


def dentition_mode(age: int) -> DentitionMode:
    """Modo de dentición según la edad del paciente (en años)."""
    if age < 0:
        raise ValueError(f"Edad inválida: {age}")
    if age < 6:
        return DentitionMode.CHILD
    if age < 13:
        return DentitionMode.MIXED
    return DentitionMode.ADULT


def valid_teeth(mode: DentitionMode) -> frozenset[str]:
    if mode == DentitionMode.ADULT:
        return PERMANENT_TEETH
    if mode == DentitionMode.CHILD:
        return DECIDUOUS_TEETH
    return PERMANENT_TEETH | DECIDUOUS_TEETH


def is_deciduous(tooth_id: str) -> bool:
    return tooth_id in DECIDUOUS_TEETH


def quadrant(tooth_id: str) -> int:
    """Cuadrante permanente equivalente (1-4), también para deciduos."""
    q = int(tooth_id[0])
    return q - 4 if q > 4 else q


def position(tooth_id: str) -> int:
    return int(tooth_id[1])


def is_anterior(tooth_id: str) -> bool:
    """Incisivos y caninos (posición 1-3) en ambas denticiones."""
    return position(tooth_id) <= 3


def arch(tooth_id: str) -> Arch:
    return Arch.MAXILLARY if quadrant(tooth_id) in (1, 2) else Arch.MANDIBULAR


def sextant(tooth_id: str) -> str:
    """Sextante PSR: S1-S3 superiores, S4-S6 inferiores."""
    q = quadrant(tooth_id)
    if is_anterior(tooth_id):
        return "S2" if q in (1, 2) else "S5"
    return {1: "S1", 2: "S3", 3: "S4", 4: "S6"}[q]
