from __future__ import annotations

from datetime import date
from typing import Any, Callable, List, Mapping, Optional

from ..domain.catalog import find_cities, find_products
from ..observability.logging_utils import log_event, summarize_text
from ..schemas import ContextAnalysis
from .intent_rules import (
    assess_technical_level,
    assess_urgency,
    classify_query_type,
    derive_intent,
    detect_domains,
    recommend_tool_names,
)


ToolRecommender = Callable[[str], List[str]]


def seasonal_context_for_month(month: int) -> str:
    if 3 <= month <= 5:
        return "dry_season"
    if 6 <= month <= 8:
        return "early_wet_season"
    if 9 <= month <= 11:
        return "wet_season"
    return "late_wet_season"


def compute_confidence(domains: List[str], query_type: str, products: List[str]) -> float:
    domain_count = len([d for d in domains if d != "general"])
    score = 0.3 + 0.15 * domain_count + 0.1 * len(products)
    if query_type != "general":
        score += 0.2
    return round(min(score, 1.0), 2)


class ContextAnalyzer:
    """Keyword classification of a farmer query; no I/O, never raises."""

    def __init__(
        self,
        *,
        tool_recommender: Optional[ToolRecommender] = None,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self._recommend_tools = tool_recommender or recommend_tool_names
        self._clock = clock

    def analyze(
        self, query: str, prior_context: Optional[Mapping[str, Any]] = None
    ) -> ContextAnalysis:
        text = (query or "").lower()
        prior_context = prior_context or {}

        domains = detect_domains(text)
        query_type = classify_query_type(text)
        products = find_products(text)
        cities = find_cities(text)
        location = cities[0] if cities else prior_context.get("user_location")
        if not isinstance(location, str):
            location = None

        analysis = ContextAnalysis(
            agricultural_domain=domains,
            query_type=query_type,
            urgency=assess_urgency(text),
            confidence=compute_confidence(domains, query_type, products),
            user_location=location or None,
            detected_products=products,
            detected_cities=cities,
            intent=derive_intent(text, domains, query_type),
            seasonal_context=seasonal_context_for_month(self._clock().month),
            technical_level=assess_technical_level(text),
            required_tools=self._safe_recommend(query or ""),
        )
        log_event(
            "context_analysis",
            query_summary=summarize_text(query, 120),
            domains=analysis.agricultural_domain,
            query_type=analysis.query_type,
            urgency=analysis.urgency,
            intent=analysis.intent,
            confidence=analysis.confidence,
            tools=analysis.required_tools,
        )
        return analysis

    def _safe_recommend(self, query: str) -> List[str]:
        try:
            return list(self._recommend_tools(query))
        except Exception as exc:
            log_event("context_tool_recommend_error", error=str(exc))
            return []
