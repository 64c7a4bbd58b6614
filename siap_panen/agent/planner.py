from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from ..observability.logging_utils import log_event, summarize_text
from ..schemas import ContextAnalysis, ExecutionPlan, Task
from .extraction import ToolParameterBuilder


TOOL_BASE_PRIORITIES: Dict[str, int] = {
    "cekHargaPasar": 9,
    "cekCuaca": 8,
    "hitungKeuntungan": 8,
    "buatJadwalTanam": 7,
    "bandingHargaKota": 7,
    "hitungKebutuhan": 6,
    "prediksiHargaMusim": 6,
    "produkHargaTertinggi": 5,
}
DEFAULT_BASE_PRIORITY = 5
URGENCY_MULTIPLIERS: Dict[str, int] = {"low": 1, "medium": 2, "high": 3}
RESPONSE_PRIORITY = 1


def tool_priority(tool_name: str, urgency: str) -> int:
    base = TOOL_BASE_PRIORITIES.get(tool_name, DEFAULT_BASE_PRIORITY)
    return base * URGENCY_MULTIPLIERS.get(urgency, 1)


def response_strategy(analysis: ContextAnalysis) -> str:
    if analysis.technical_level == "advanced":
        return "comprehensive"
    if analysis.query_type == "how_to":
        return "step_by_step"
    return "concise"


def build_reasoning(analysis: ContextAnalysis, tool_names: List[str]) -> str:
    reasoning = (
        f"User bertanya tentang {analysis.primary_domain} dengan tipe pertanyaan "
        f"{analysis.query_type}. "
    )
    if tool_names:
        reasoning += f"Perlu menggunakan tools: {', '.join(tool_names)}. "
    reasoning += (
        f"Akan memberikan respons yang sesuai dengan level {analysis.technical_level}."
    )
    return reasoning


class TaskPlanner:
    """Deterministic planner: one tool task per recommended tool plus a response task."""

    def __init__(self, parameter_builder: Optional[ToolParameterBuilder] = None) -> None:
        self._parameters = parameter_builder or ToolParameterBuilder()

    def create_plan(
        self,
        query: str,
        analysis: ContextAnalysis,
        available_tools: Iterable[str],
    ) -> ExecutionPlan:
        available = set(available_tools)
        selected = [name for name in analysis.required_tools if name in available]

        tasks: List[Task] = []
        for index, tool_name in enumerate(selected, start=1):
            tasks.append(
                Task(
                    id=f"task_{index}",
                    action="tool_call",
                    tool_name=tool_name,
                    parameters=self._parameters.build(tool_name, query, analysis),
                    priority=tool_priority(tool_name, analysis.urgency),
                )
            )
        tasks.append(
            Task(
                id=f"task_{len(tasks) + 1}",
                action="direct_response",
                priority=RESPONSE_PRIORITY,
                dependencies=[task.id for task in tasks],
            )
        )
        tasks.sort(key=lambda task: task.priority, reverse=True)

        plan = ExecutionPlan(
            reasoning=build_reasoning(analysis, analysis.required_tools),
            tasks=tasks,
            response_strategy=response_strategy(analysis),
        )
        log_event(
            "plan_created",
            query_summary=summarize_text(query, 120),
            tools=[task.tool_name for task in plan.tool_tasks()],
            priorities=[task.priority for task in plan.tasks],
            strategy=plan.response_strategy,
        )
        return plan
