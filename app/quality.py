"""
Quality thresholds for generated plans.

The five scores come from the model's self-assessment; the thresholds are
fixed. A plan needs improvement as soon as one score falls below its bar.
"""

from typing import List, Optional

from app.models import QualityMetricResult, QualityReport

QUALITY_METRICS = [
    {
        "key": "functional_coverage",
        "name": "Cobertura Funcional (CF)",
        "definition": "Porcentaje de criterios de aceptación de la HU cubiertos por al menos un caso de prueba.",
        "threshold": 95,
    },
    {
        "key": "semantic_consistency",
        "name": "Consistencia Semántica (CS)",
        "definition": "Grado de alineación terminológica entre la HU y los casos de prueba (variables, roles, acciones).",
        "threshold": 90,
    },
    {
        "key": "structural_completeness",
        "name": "Completitud Estructural (CE)",
        "definition": "Porcentaje de escenarios posibles (positivos/negativos) efectivamente representados.",
        "threshold": 85,
    },
    {
        "key": "hu_test_traceability",
        "name": "Trazabilidad HU-Prueba (TP)",
        "definition": "Correspondencia unívoca entre HU y casos (sin omisiones ni duplicados).",
        "threshold": 100,
    },
    {
        "key": "clarity_of_expected_results",
        "name": "Claridad de Resultados (CRE)",
        "definition": "Casos que incluyen resultados esperados verificables, medibles y no ambiguos.",
        "threshold": 95,
    },
]


def evaluate(report: Optional[QualityReport]) -> List[QualityMetricResult]:
    if report is None:
        return []
    results = []
    for metric in QUALITY_METRICS:
        score = getattr(report, metric["key"])
        results.append(
            QualityMetricResult(
                key=metric["key"],
                name=metric["name"],
                definition=metric["definition"],
                score=score,
                threshold=metric["threshold"],
                passes=score >= metric["threshold"],
            )
        )
    return results


def needs_improvement(report: Optional[QualityReport]) -> bool:
    """True iff any score is below its threshold. Plans without a report never prompt."""
    return any(not result.passes for result in evaluate(report))
