import sys
import unittest
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from siap_panen.agent.extraction import ToolParameterBuilder
from siap_panen.agent.planner import TaskPlanner, tool_priority
from siap_panen.schemas import ContextAnalysis, ExecutionPlan, Task


ALL_TOOLS = [
    "cekCuaca",
    "buatJadwalTanam",
    "hitungKebutuhan",
    "cekHargaPasar",
    "bandingHargaKota",
    "hitungKeuntungan",
    "prediksiHargaMusim",
    "produkHargaTertinggi",
]


class TaskPlannerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.planner = TaskPlanner(ToolParameterBuilder(clock=lambda: date(2025, 3, 1)))

    def test_priorities_scale_with_urgency(self) -> None:
        analysis = ContextAnalysis(
            agricultural_domain=["weather", "pricing"],
            urgency="high",
            required_tools=["cekCuaca", "hitungKebutuhan", "cekHargaPasar"],
        )
        plan = self.planner.create_plan("cuaca dan harga padi", analysis, ALL_TOOLS)

        self.assertEqual(
            [(task.tool_name, task.priority) for task in plan.tasks],
            [("cekHargaPasar", 27), ("cekCuaca", 24), ("hitungKebutuhan", 18), (None, 1)],
        )
        response = plan.response_task()
        self.assertEqual(response.action, "direct_response")
        self.assertEqual(sorted(response.dependencies), ["task_1", "task_2", "task_3"])

    def test_single_response_task_depends_on_every_tool(self) -> None:
        analysis = ContextAnalysis(required_tools=["buatJadwalTanam", "produkHargaTertinggi"])
        plan = self.planner.create_plan("kapan waktu tanam padi terbaik", analysis, ALL_TOOLS)

        responses = [task for task in plan.tasks if task.action == "direct_response"]
        self.assertEqual(len(responses), 1)
        self.assertEqual(
            set(responses[0].dependencies), {task.id for task in plan.tool_tasks()}
        )
        priorities = [task.priority for task in plan.tasks]
        self.assertEqual(priorities, sorted(priorities, reverse=True))

    def test_unavailable_tools_are_skipped(self) -> None:
        analysis = ContextAnalysis(required_tools=["cekCuaca", "cekHargaPasar"])
        plan = self.planner.create_plan("cuaca dan harga", analysis, ["cekCuaca"])
        self.assertEqual([task.tool_name for task in plan.tool_tasks()], ["cekCuaca"])

    def test_no_tools_gives_response_only(self) -> None:
        plan = self.planner.create_plan("halo", ContextAnalysis(), ALL_TOOLS)
        self.assertEqual(len(plan.tasks), 1)
        self.assertEqual(plan.tasks[0].action, "direct_response")
        self.assertEqual(plan.tasks[0].dependencies, [])

    def test_parameters_come_from_query(self) -> None:
        analysis = ContextAnalysis(required_tools=["hitungKebutuhan"])
        plan = self.planner.create_plan("hitung pupuk 3 ha", analysis, ALL_TOOLS)
        self.assertEqual(plan.tool_tasks()[0].parameters["luasHa"], 3.0)

    def test_response_strategy(self) -> None:
        advanced = ContextAnalysis(technical_level="advanced", query_type="how_to")
        how_to = ContextAnalysis(query_type="how_to")
        plain = ContextAnalysis(query_type="price_inquiry")

        self.assertEqual(
            self.planner.create_plan("q", advanced, ALL_TOOLS).response_strategy,
            "comprehensive",
        )
        self.assertEqual(
            self.planner.create_plan("q", how_to, ALL_TOOLS).response_strategy,
            "step_by_step",
        )
        self.assertEqual(
            self.planner.create_plan("q", plain, ALL_TOOLS).response_strategy,
            "concise",
        )

    def test_reasoning_mentions_domain_and_tools(self) -> None:
        analysis = ContextAnalysis(
            agricultural_domain=["crops"],
            query_type="timing",
            required_tools=["buatJadwalTanam"],
        )
        plan = self.planner.create_plan("kapan tanam", analysis, ALL_TOOLS)
        self.assertIn("crops", plan.reasoning)
        self.assertIn("timing", plan.reasoning)
        self.assertIn("buatJadwalTanam", plan.reasoning)
        self.assertIn("level basic", plan.reasoning)

    def test_default_base_priority(self) -> None:
        self.assertEqual(tool_priority("alatBaru", "medium"), 10)
        self.assertEqual(tool_priority("cekCuaca", "unknown"), 8)


class ExecutionOrderTests(unittest.TestCase):
    def test_dependencies_come_first(self) -> None:
        plan = ExecutionPlan(
            reasoning="r",
            tasks=[
                Task(id="task_3", action="direct_response", dependencies=["task_1", "task_2"]),
                Task(id="task_1", action="tool_call", tool_name="cekCuaca", priority=8),
                Task(id="task_2", action="tool_call", tool_name="cekHargaPasar", priority=9),
            ],
        )
        order = [task.id for task in plan.execution_order()]
        self.assertEqual(order[-1], "task_3")
        self.assertEqual(set(order[:2]), {"task_1", "task_2"})

    def test_cycle_is_rejected(self) -> None:
        plan = ExecutionPlan(
            reasoning="r",
            tasks=[
                Task(id="a", action="tool_call", dependencies=["b"]),
                Task(id="b", action="tool_call", dependencies=["a"]),
            ],
        )
        with self.assertRaises(ValueError):
            plan.execution_order()


if __name__ == "__main__":
    unittest.main()
