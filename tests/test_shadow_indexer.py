"""
Tests del shadow indexer: recomputación pura, determinista y con
sugerencias automáticas.
"""

from app.models.dental_chart import DentalChart, ToothState, ToothStatus, ToothSurface
from app.models.dentition import DentitionMode
from app.services.shadow_index_service import recompute


def _apply(chart: DentalChart, *states: ToothState) -> DentalChart:
    for state in states:
        chart = chart.with_tooth(state)
    return chart


def _missing(*teeth: str) -> list[ToothState]:
    return [ToothState(tooth_id=t, status=ToothStatus.MISSING) for t in teeth]


def test_recompute_is_pure():
    chart = _apply(
        DentalChart.for_mode(DentitionMode.ADULT),
        ToothState(
            tooth_id="16",
            status=ToothStatus.DECAYED,
            surfaces=frozenset({ToothSurface.OCCLUSAL, ToothSurface.MESIAL}),
        ),
        ToothState(tooth_id="36", probing_code=3),
    )
    first = recompute(chart)
    second = recompute(chart)
    assert first.model_dump_json() == second.model_dump_json()


def test_recompute_ignores_event_order():
    states = [
        ToothState(tooth_id="46", status=ToothStatus.RESTORED),
        ToothState(tooth_id="21", status=ToothStatus.DECAYED, surfaces=frozenset({ToothSurface.DISTAL})),
        *_missing("35", "36"),
    ]
    base = DentalChart.for_mode(DentitionMode.ADULT)
    forward = recompute(_apply(base, *states))
    backward = recompute(_apply(base, *reversed(states)))
    assert forward.model_dump_json() == backward.model_dump_json()


def test_default_chart_has_no_findings():
    snapshot = recompute(DentalChart.for_mode(DentitionMode.ADULT))
    assert snapshot.cavity_classes == {}
    assert snapshot.edentulism == {"maxillary": None, "mandibular": None}
    assert snapshot.permanent_dmf.total == 0
    assert snapshot.periodontal.max_code is None
    assert snapshot.suggestions == []


def test_decayed_molar_is_classified_and_counted():
    chart = _apply(
        DentalChart.for_mode(DentitionMode.ADULT),
        ToothState(
            tooth_id="16",
            status=ToothStatus.DECAYED,
            surfaces=frozenset({ToothSurface.OCCLUSAL, ToothSurface.MESIAL}),
        ),
    )
    snapshot = recompute(chart)
    assert snapshot.cavity_classes["16"].gv_black_class == "II"
    assert snapshot.decayed_teeth == ["16"]
    assert snapshot.permanent_dmf.decayed == 1
    assert [s.code for s in snapshot.suggestions] == ["GVB-II"]


def test_decayed_tooth_without_surfaces_has_no_class():
    chart = _apply(
        DentalChart.for_mode(DentitionMode.ADULT),
        ToothState(tooth_id="26", status=ToothStatus.DECAYED),
    )
    snapshot = recompute(chart)
    assert "26" not in snapshot.cavity_classes
    assert snapshot.decayed_teeth == ["26"]


def test_single_missing_tooth_suggests_implant():
    chart = _apply(DentalChart.for_mode(DentitionMode.ADULT), *_missing("36"))
    snapshot = recompute(chart)
    codes = [s.code for s in snapshot.suggestions]
    assert codes == ["IMPL-SINGLE"]
    assert snapshot.edentulism["mandibular"].kennedy_class == "III"
    assert snapshot.edentulism["maxillary"] is None


def test_several_missing_teeth_suggest_partial_denture():
    chart = _apply(
        DentalChart.for_mode(DentitionMode.ADULT),
        *_missing("47", "46", "36", "37"),
    )
    snapshot = recompute(chart)
    rpd = next(s for s in snapshot.suggestions if s.code == "RPD-SUGGEST")
    assert rpd.related_teeth == ["36", "37", "46", "47"]
    assert "IMPL-SINGLE" not in [s.code for s in snapshot.suggestions]


def test_heavy_damage_suggests_full_mouth_rehabilitation():
    decayed = [
        ToothState(tooth_id=t, status=ToothStatus.DECAYED, surfaces=frozenset({ToothSurface.OCCLUSAL}))
        for t in ("14", "15", "16", "24", "25", "26")
    ]
    chart = _apply(
        DentalChart.for_mode(DentitionMode.ADULT),
        *decayed,
        *_missing("36", "37", "46", "47"),
    )
    snapshot = recompute(chart)
    codes = [s.code for s in snapshot.suggestions]
    assert codes[0] == "FMR-SUGGEST"
    assert "RPD-SUGGEST" in codes
    assert codes.count("GVB-I") == 6


def test_impacted_third_molar_warning():
    chart = _apply(
        DentalChart.for_mode(DentitionMode.ADULT),
        ToothState(tooth_id="38", status=ToothStatus.IMPACTED),
        ToothState(tooth_id="48", status=ToothStatus.IMPACTED),
    )
    warnings = [s for s in recompute(chart).suggestions if s.code == "IMPACTED-8"]
    assert [w.related_teeth for w in warnings] == [["38"], ["48"]]
    assert all(w.type == "warning" for w in warnings)


def test_mixed_dentition_scores_both_indices():
    chart = _apply(
        DentalChart.for_mode(DentitionMode.MIXED),
        ToothState(tooth_id="16", status=ToothStatus.RESTORED),
        ToothState(tooth_id="55", status=ToothStatus.DECAYED),
        ToothState(tooth_id="85", status=ToothStatus.MISSING),
    )
    snapshot = recompute(chart)
    assert snapshot.dentition_mode == "MIXED"
    assert snapshot.permanent_dmf.filled == 1
    assert snapshot.deciduous_dmf.decayed == 1
    assert snapshot.deciduous_dmf.missing == 1
    # Kennedy no considera deciduos
    assert snapshot.edentulism["mandibular"] is None
