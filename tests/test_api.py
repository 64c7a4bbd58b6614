import importlib.util
import os
import sys
import time
import unittest
from datetime import date
from pathlib import Path
from unittest.mock import patch

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

_MISSING_DEPS = any(
    importlib.util.find_spec(name) is None for name in ("fastapi", "langgraph")
)

if not _MISSING_DEPS:
    from fastapi.testclient import TestClient

    from siap_panen.agent.context_analyzer import ContextAnalyzer
    from siap_panen.agent.extraction import ToolParameterBuilder
    from siap_panen.agent.orchestrator import ChatOrchestrator
    from siap_panen.agent.planner import TaskPlanner
    from siap_panen.api import server
    from siap_panen.infra.config import get_config
    from siap_panen.infra.memory_store import InMemoryConversationStore
    from siap_panen.prompts.chat import APOLOGY
    from siap_panen.tools.farming import FarmingTools
    from siap_panen.tools.market import MarketTools
    from siap_panen.tools.registry import ToolRegistry


TODAY = date(2025, 7, 1)


class _DummyLLM:
    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.calls = 0

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return "Tanam jagung di awal musim hujan."


@unittest.skipUnless(not _MISSING_DEPS, "fastapi or langgraph is not installed")
class ChatApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self._env_backup = {
            "REQUEST_TIMEOUT_SECONDS": os.environ.get("REQUEST_TIMEOUT_SECONDS"),
        }
        os.environ.pop("REQUEST_TIMEOUT_SECONDS", None)
        get_config.cache_clear()
        self.llm = _DummyLLM()
        self.orchestrator = self._build(self.llm)
        self._patcher = patch.object(
            server, "get_orchestrator", return_value=self.orchestrator
        )
        self._patcher.start()
        self.client = TestClient(server.app)

    def tearDown(self) -> None:
        self._patcher.stop()
        self.orchestrator.close()
        for key, value in self._env_backup.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_config.cache_clear()

    @staticmethod
    def _build(llm) -> "ChatOrchestrator":
        registry = ToolRegistry(
            MarketTools([], clock=lambda: TODAY),
            FarmingTools(clock=lambda: TODAY),
        )
        return ChatOrchestrator(
            registry,
            InMemoryConversationStore(),
            llm,
            analyzer=ContextAnalyzer(
                tool_recommender=registry.recommend_tools, clock=lambda: TODAY
            ),
            planner=TaskPlanner(ToolParameterBuilder(clock=lambda: TODAY)),
            config=get_config(),
        )

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_tools_listing(self) -> None:
        body = self.client.get("/api/tools").json()
        self.assertEqual(len(body["tools"]), 8)
        self.assertEqual(body["stats"]["total_tools"], 8)
        weather = next(tool for tool in body["tools"] if tool["name"] == "cekCuaca")
        self.assertIn("parameterSchema", weather)
        self.assertEqual(weather["parameterSchema"]["lokasi"]["type"], "string")

    def test_chat_returns_camel_case_metadata(self) -> None:
        response = self.client.post(
            "/api/chat",
            json={"messages": [{"role": "user", "content": "Kapan tanam jagung?"}]},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["response"], "Tanam jagung di awal musim hujan.")
        metadata = body["metadata"]
        self.assertTrue(metadata["conversationId"].startswith("conv_"))
        self.assertIn("buatJadwalTanam", metadata["toolsUsed"])
        self.assertTrue(metadata["hasToolData"])
        self.assertLessEqual(len(metadata["suggestedFollowUps"]), 3)

        follow_up = self.client.post(
            "/api/chat",
            json={
                "messages": [{"role": "user", "content": "Cuaca di Malang?"}],
                "conversationId": metadata["conversationId"],
            },
        )
        self.assertEqual(
            follow_up.json()["metadata"]["conversationId"], metadata["conversationId"]
        )

    def test_missing_messages_is_bad_request(self) -> None:
        response = self.client.post("/api/chat", json={})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "invalid_request")
        self.assertEqual(self.llm.calls, 0)

    def test_malformed_json_is_bad_request(self) -> None:
        response = self.client.post(
            "/api/chat",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "invalid_request")

    def test_slow_turn_returns_apology(self) -> None:
        os.environ["REQUEST_TIMEOUT_SECONDS"] = "0.05"
        get_config.cache_clear()
        self.llm.delay = 0.5

        response = self.client.post(
            "/api/chat",
            json={"messages": [{"role": "user", "content": "Halo"}]},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["response"], APOLOGY)
        self.assertEqual(body["metadata"], {"error": True, "fallback": True})


if __name__ == "__main__":
    unittest.main()
