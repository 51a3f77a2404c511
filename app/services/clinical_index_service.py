"""
Calculadoras de índices clínicos — funciones puras y deterministas.

- G.V. Black: clase de cavidad según superficies afectadas y posición.
- Kennedy (+ Applegate): clase de edentulismo parcial por arco.
- CPOD/ceod (DMFT/dmft): cariados, perdidos y obturados con tasa.
- PSR/CPITN: peor código de sondaje por sextante.
"""

from app.models.dental_chart import ToothState, ToothStatus, ToothSurface
from app.models.dentition import (
    MANDIBULAR_ARCH_ORDER,
    MAXILLARY_ARCH_ORDER,
    SEXTANTS,
    THIRD_MOLARS,
    Arch,
    is_anterior,
    is_deciduous,
    sextant,
)
from app.schemas.clinical_index import (
    CavityClassification,
    DmfScore,
    EdentulismClassification,
    PeriodontalScreening,
)

# ── G.V. Black ───────────────────────────────────────
# Clave: (anterior, proximal, oclusal/incisal, liso vestibular/lingual)
_PROXIMAL = frozenset({ToothSurface.MESIAL, ToothSurface.DISTAL})
_SMOOTH = frozenset({ToothSurface.BUCCAL, ToothSurface.LINGUAL})

GV_BLACK_TABLE: dict[tuple[bool, bool, bool, bool], tuple[str, str]] = {
    # Posteriores
    (False, False, True, False): ("I", "Caries de fosas y fisuras oclusales"),
    (False, False, True, True): ("I", "Fosas y fisuras con extensión vestibular/lingual"),
    (False, False, False, True): ("V", "Caries del tercio gingival (cervical)"),
    (False, True, False, False): ("II", "Caries proximal en posterior"),
    (False, True, False, True): ("II", "Caries proximal en posterior"),
    (False, True, True, False): ("II", "Caries proximal en posterior con extensión oclusal"),
    (False, True, True, True): ("II", "Caries proximal en posterior con extensión oclusal"),
    # Anteriores (la superficie O es el borde incisal)
    (True, False, True, False): ("VI", "Caries del borde incisal"),
    (True, False, True, True): ("VI", "Caries del borde incisal"),
    (True, False, False, True): ("V", "Caries del tercio gingival (cervical)"),
    (True, True, False, False): ("III", "Caries proximal en anterior sin ángulo incisal"),
    (True, True, False, True): ("III", "Caries proximal en anterior sin ángulo incisal"),
    (True, True, True, False): ("IV", "Caries proximal en anterior con ángulo incisal"),
    (True, True, True, True): ("IV", "Caries proximal en anterior con ángulo incisal"),
}


def classify_cavity(
    tooth_id: str, surfaces: frozenset[ToothSurface]
) -> CavityClassification | None:
    """Clase G.V. Black; None si no hay superficies afectadas."""
    anterior = is_anterior(tooth_id)
    key = (
        anterior,
        bool(surfaces & _PROXIMAL),
        ToothSurface.OCCLUSAL in surfaces,
        bool(surfaces & _SMOOTH),
    )
    entry = GV_BLACK_TABLE.get(key)
    if entry is None:
        return None
    gv_class, description = entry
    return CavityClassification(
        tooth_id=tooth_id,
        gv_black_class=gv_class,
        description=description,
        surfaces=sorted(s.value for s in surfaces),
        is_anterior=anterior,
    )


# ── Kennedy / Applegate ──────────────────────────────

_KENNEDY_DESCRIPTIONS = {
    "I": "Áreas edéntulas bilaterales posteriores a los dientes remanentes (extremo libre bilateral)",
    "II": "Área edéntula unilateral posterior a los dientes remanentes (extremo libre unilateral)",
    "III": "Área edéntula unilateral limitada por dientes en ambos extremos",
    "IV": "Área edéntula única anterior que cruza la línea media",
}

_ARCH_ORDER = {
    Arch.MAXILLARY: MAXILLARY_ARCH_ORDER,
    Arch.MANDIBULAR: MANDIBULAR_ARCH_ORDER,
}

_CENTRAL_INCISORS = {
    Arch.MAXILLARY: frozenset({"11", "21"}),
    Arch.MANDIBULAR: frozenset({"31", "41"}),
}


def _edentulous_runs(order: tuple[str, ...], missing: frozenset[str]) -> list[tuple[int, int]]:
    """Tramos contiguos de dientes ausentes como (inicio, fin) inclusivos."""
    runs: list[tuple[int, int]] = []
    start: int | None = None
    for i, tooth in enumerate(order):
        if tooth in missing:
            if start is None:
                start = i
        elif start is not None:
            runs.append((start, i - 1))
            start = None
    if start is not None:
        runs.append((start, len(order) - 1))
    return runs


def classify_edentulism(
    missing_teeth: frozenset[str], arch: Arch
) -> EdentulismClassification | None:
    """
    Clasificación de Kennedy para un arco permanente.
    Regla de Applegate: los terceros molares ausentes no se consideran.
    Retorna None si el arco está completo o totalmente edéntulo.
    """
    order = tuple(
        t for t in _ARCH_ORDER[arch]
        if not (t in THIRD_MOLARS and t in missing_teeth)
    )
    missing = frozenset(t for t in order if t in missing_teeth)
    if not missing or len(missing) == len(order):
        return None

    runs = _edentulous_runs(order, missing)
    last = len(order) - 1
    free_end_right = runs[0][0] == 0
    free_end_left = runs[-1][1] == last

    if free_end_right and free_end_left:
        kennedy_class, modifications = "I", len(runs) - 2
    elif free_end_right or free_end_left:
        kennedy_class, modifications = "II", len(runs) - 1
    elif len(runs) == 1 and _CENTRAL_INCISORS[arch] <= missing:
        # Clase IV no admite modificaciones
        kennedy_class, modifications = "IV", 0
    else:
        kennedy_class, modifications = "III", len(runs) - 1

    return EdentulismClassification(
        arch=arch.value,
        kennedy_class=kennedy_class,
        modifications=modifications,
        missing_teeth=sorted(missing),
        description=_KENNEDY_DESCRIPTIONS[kennedy_class],
    )


# ── CPOD / ceod ──────────────────────────────────────

FILLED_STATUSES = frozenset({
    ToothStatus.RESTORED,
    ToothStatus.CROWNED,
    ToothStatus.ROOT_CANAL_TREATED,
    ToothStatus.BRIDGED,
})

# (máximo total inclusivo, etiqueta)
DMF_SEVERITY_BANDS: tuple[tuple[int, str], ...] = (
    (1, "very_low"),
    (4, "low"),
    (8, "moderate"),
    (13, "high"),
)


def dmf_severity(total: int) -> str:
    for upper, label in DMF_SEVERITY_BANDS:
        if total <= upper:
            return label
    return "very_high"


def calculate_dmf(teeth: list[ToothState], deciduous: bool = False) -> DmfScore:
    """
    Cuenta cariados/perdidos/obturados sobre la dentición indicada.
    En permanentes se excluyen los terceros molares (criterio OMS).
    """
    index_teeth = [
        t for t in teeth
        if is_deciduous(t.tooth_id) == deciduous
        and (deciduous or t.tooth_id not in THIRD_MOLARS)
    ]
    decayed = sum(1 for t in index_teeth if t.status == ToothStatus.DECAYED)
    missing = sum(1 for t in index_teeth if t.status == ToothStatus.MISSING)
    filled = sum(1 for t in index_teeth if t.status in FILLED_STATUSES)
    total = decayed + missing + filled
    rate = round(total / len(index_teeth), 4) if index_teeth else 0.0

    return DmfScore(
        dentition="deciduous" if deciduous else "permanent",
        decayed=decayed,
        missing=missing,
        filled=filled,
        total=total,
        index_teeth=len(index_teeth),
        rate=rate,
        severity=dmf_severity(total),
    )


# ── PSR / CPITN ──────────────────────────────────────

PSR_INTERPRETATION: dict[int, tuple[str, str]] = {
    0: ("Periodonto sano", "Solo cuidado preventivo"),
    1: ("Sangrado al sondaje", "Instrucción de higiene oral + profilaxis"),
    2: ("Cálculo o factores retentivos de placa", "Destartraje + instrucción de higiene oral"),
    3: ("Bolsas poco profundas (3.5-5.5 mm)", "Periodontograma completo + raspado y alisado radicular"),
    4: ("Bolsas profundas (>5.5 mm)", "Evaluación periodontal completa + terapia compleja"),
}


def interpret_periodontal_screening(teeth: list[ToothState]) -> PeriodontalScreening:
    """
    Peor código PSR por sextante. Ante empate basta cualquiera de los
    códigos: el resultado es el nivel, no el diente que lo produjo.
    """
    codes: dict[str, int | None] = {s: None for s in SEXTANTS}
    for tooth in teeth:
        if tooth.probing_code is None:
            continue
        key = sextant(tooth.tooth_id)
        current = codes[key]
        codes[key] = tooth.probing_code if current is None else max(current, tooth.probing_code)

    recorded = [c for c in codes.values() if c is not None]
    if not recorded:
        return PeriodontalScreening(
            sextant_codes=codes,
            max_code=None,
            assessment="Sin registro periodontal",
            suggested_treatment="Registrar PSR por sextante",
        )

    max_code = max(recorded)
    assessment, treatment = PSR_INTERPRETATION[max_code]
    return PeriodontalScreening(
        sextant_codes=codes,
        max_code=max_code,
        assessment=assessment,
        suggested_treatment=treatment,
    )
