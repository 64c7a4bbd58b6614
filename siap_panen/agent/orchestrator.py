"""Chat turn pipeline.

One request runs as a LangGraph workflow:

    load_state -> analyze -> plan -> execute_tools -> respond -> persist

Any failure after request validation drops to the fallback path: a second,
independent model call with a fixed persona prompt, and if that fails too a
static apology. Cancellation is checked between nodes; a cancelled turn gets
the apology without another model call.
"""

from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime
from threading import Event
from typing import Any, Dict, List, Mapping, Optional, Tuple

from langgraph.graph import END, StateGraph
from pydantic import ValidationError

from ..infra.config import AppConfig, get_config
from ..infra.llm import LanguageModel
from ..infra.memory_store import (
    ConversationMemory,
    ConversationStore,
    generate_conversation_id,
)
from ..observability.logging_utils import (
    log_error,
    log_event,
    propagate_trace,
    summarize_text,
    trace_scope,
)
from ..observability.otel import record_exception, start_span
from ..prompts.chat import (
    APOLOGY,
    DEFAULT_FOLLOW_UPS,
    FALLBACK_DEFAULT_MESSAGE,
    FALLBACK_SYSTEM_PROMPT,
    GREETING,
    build_follow_ups,
    build_system_prompt,
)
from ..schemas import (
    ChatRequest,
    ChatResponse,
    FallbackMetadata,
    ResponseMetadata,
    ToolCall,
)
from ..tools.errors import tool_error
from ..tools.registry import ToolRegistry
from .context_analyzer import ContextAnalyzer
from .extraction import ToolParameterBuilder
from .planner import TaskPlanner
from .state import ChatState, add_trace


class InvalidChatRequest(ValueError):
    """The payload is not a chat request; nothing was executed."""


class RequestCancelled(RuntimeError):
    """The caller gave up on the request (timeout or disconnect)."""


def parse_chat_request(payload: Any) -> ChatRequest:
    if isinstance(payload, ChatRequest):
        return payload
    if not isinstance(payload, Mapping):
        raise InvalidChatRequest("request body must be a JSON object")
    messages = payload.get("messages")
    if not isinstance(messages, list):
        raise InvalidChatRequest("'messages' must be a list of {role, content}")
    try:
        return ChatRequest.model_validate(dict(payload))
    except ValidationError as exc:
        raise InvalidChatRequest(f"invalid chat request: {exc.errors()[0]['msg']}") from exc


def apology_response() -> ChatResponse:
    return ChatResponse(response=APOLOGY, metadata=FallbackMetadata())


def _is_error_payload(result: Any) -> bool:
    return isinstance(result, dict) and bool(result.get("error"))


class ChatOrchestrator:
    def __init__(
        self,
        registry: ToolRegistry,
        store: ConversationStore,
        llm: LanguageModel,
        *,
        analyzer: Optional[ContextAnalyzer] = None,
        planner: Optional[TaskPlanner] = None,
        config: Optional[AppConfig] = None,
    ) -> None:
        self._config = config or get_config()
        self._registry = registry
        self._store = store
        self._llm = llm
        self._analyzer = analyzer or ContextAnalyzer(
            tool_recommender=registry.recommend_tools
        )
        self._planner = planner or TaskPlanner(ToolParameterBuilder())
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, self._config.tool_max_workers),
            thread_name_prefix="siap-panen-tool",
        )
        self._graph = self._build_graph()

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------ entry point

    def handle(self, payload: Any, cancel_event: Optional[Event] = None) -> ChatResponse:
        request = parse_chat_request(payload)
        with trace_scope(), start_span(
            "chat.handle",
            {
                "chat.message_count": len(request.messages),
                "chat.conversation_id": request.conversation_id,
            },
        ) as span:
            log_event(
                "chat_request",
                message_count=len(request.messages),
                conversation_id=request.conversation_id or "new",
            )
            if not request.messages:
                return self._greeting(request)
            try:
                return self._run(request, cancel_event)
            except RequestCancelled:
                log_event("request_cancelled", conversation_id=request.conversation_id)
                return apology_response()
            except Exception as exc:
                record_exception(span, exc)
                log_error("chat_error", error=str(exc))
                return self._fallback(request, cancel_event)

    def _run(self, request: ChatRequest, cancel_event: Optional[Event]) -> ChatResponse:
        memory = ConversationMemory(
            self._store,
            request.conversation_id,
            tool_history_limit=self._config.tool_history_limit,
        )
        final = self._graph.invoke(
            {
                "request": request,
                "memory": memory,
                "cancel_event": cancel_event,
                "trace": [],
            }
        )
        analysis = final["analysis"]
        tool_results = final.get("tool_results") or {}
        metadata = ResponseMetadata(
            conversation_id=memory.get_conversation_id(),
            tools_used=list(tool_results),
            context_domains=list(analysis.agricultural_domain),
            query_type=analysis.query_type,
            suggested_follow_ups=build_follow_ups(analysis),
            has_tool_data=bool(tool_results),
        )
        return ChatResponse(response=final["response"], metadata=metadata)

    @staticmethod
    def _greeting(request: ChatRequest) -> ChatResponse:
        # Nothing to answer yet; no state is created for the conversation.
        metadata = ResponseMetadata(
            conversation_id=request.conversation_id or generate_conversation_id(),
            suggested_follow_ups=list(DEFAULT_FOLLOW_UPS),
        )
        return ChatResponse(response=GREETING, metadata=metadata)

    def _fallback(self, request: ChatRequest, cancel_event: Optional[Event]) -> ChatResponse:
        if cancel_event is not None and cancel_event.is_set():
            return apology_response()
        last_message = request.messages[-1].content or FALLBACK_DEFAULT_MESSAGE
        try:
            text = self._llm.complete(FALLBACK_SYSTEM_PROMPT, last_message)
        except Exception as exc:
            log_error("fallback_used", level="apology", error=str(exc))
            return apology_response()
        log_event("fallback_used", level="model", response_length=len(text))
        return ChatResponse(response=text, metadata=FallbackMetadata())

    # ------------------------------------------------------------ graph

    def _build_graph(self):
        graph = StateGraph(ChatState)
        graph.add_node("load_state", self._load_state_node)
        graph.add_node("analyze", self._analyze_node)
        graph.add_node("plan", self._plan_node)
        graph.add_node("execute_tools", self._execute_tools_node)
        graph.add_node("respond", self._respond_node)
        graph.add_node("persist", self._persist_node)

        graph.set_entry_point("load_state")
        graph.add_edge("load_state", "analyze")
        graph.add_edge("analyze", "plan")
        graph.add_edge("plan", "execute_tools")
        graph.add_edge("execute_tools", "respond")
        graph.add_edge("respond", "persist")
        graph.add_edge("persist", END)
        return graph.compile()

    @staticmethod
    def _check_cancelled(state: ChatState) -> None:
        event = state.get("cancel_event")
        if event is not None and event.is_set():
            raise RequestCancelled("request cancelled")

    def _load_state_node(self, state: ChatState) -> ChatState:
        self._check_cancelled(state)
        conversation = state["memory"].load_state()
        state = add_trace(state, "state loaded")
        state.update(
            {
                "query": state["request"].last_user_message(),
                "prior_context": dict(conversation.context),
            }
        )
        return state

    def _analyze_node(self, state: ChatState) -> ChatState:
        self._check_cancelled(state)
        analysis = self._analyzer.analyze(state["query"], state.get("prior_context"))
        state = add_trace(state, "context analyzed")
        state.update({"analysis": analysis})
        return state

    def _plan_node(self, state: ChatState) -> ChatState:
        self._check_cancelled(state)
        plan = self._planner.create_plan(
            state["query"], state["analysis"], self._registry.names()
        )
        state = add_trace(state, f"planned {len(plan.tool_tasks())} tool task(s)")
        state.update({"plan": plan})
        return state

    def _execute_tools_node(self, state: ChatState) -> ChatState:
        memory: ConversationMemory = state["memory"]
        cancel_event = state.get("cancel_event")
        tasks = [task for task in state["plan"].execution_order() if task.action == "tool_call"]

        submitted: List[Tuple[str, Dict[str, Any], Future]] = []
        for task in tasks:
            self._check_cancelled(state)
            # Child generators are drawn in plan order so a seeded turn replays exactly.
            future = self._executor.submit(
                propagate_trace(self._registry.execute_tool),
                task.tool_name,
                dict(task.parameters),
                rng=self._registry.spawn_rng(),
            )
            submitted.append((task.tool_name, dict(task.parameters), future))

        deadline = time.monotonic() + self._config.tool_timeout_seconds
        results: Dict[str, Any] = {}
        for tool_name, parameters, future in submitted:
            try:
                result = future.result(timeout=max(0.0, deadline - time.monotonic()))
            except FutureTimeoutError:
                future.cancel()
                log_event("tool_error", tool=tool_name, error="timeout")
                result = tool_error(f"Gagal menjalankan {tool_name}: waktu habis")
            results[tool_name] = result
            memory.add_tool_call(
                ToolCall(
                    tool_name=tool_name,
                    parameters=parameters,
                    result=result,
                    timestamp=datetime.now(),
                    success=not _is_error_payload(result),
                )
            )
        if cancel_event is not None and cancel_event.is_set():
            raise RequestCancelled("request cancelled during tool execution")

        state = add_trace(state, f"tools executed: {', '.join(results) or 'none'}")
        state.update({"tool_results": results})
        return state

    def _respond_node(self, state: ChatState) -> ChatState:
        self._check_cancelled(state)
        analysis = state["analysis"]
        system_prompt = build_system_prompt(
            state["plan"].response_strategy,
            analysis.seasonal_context,
            state.get("tool_results") or {},
        )
        log_event(
            "llm_call",
            strategy=state["plan"].response_strategy,
            prompt_length=len(system_prompt),
            query_summary=summarize_text(state["query"], 120),
        )
        with start_span("llm.complete", {"llm.strategy": state["plan"].response_strategy}) as span:
            try:
                text = self._llm.complete(system_prompt, state["query"])
            except Exception as exc:
                record_exception(span, exc)
                log_event("llm_error", error=str(exc))
                raise
        state = add_trace(state, "response generated")
        state.update({"response": text})
        return state

    def _persist_node(self, state: ChatState) -> ChatState:
        self._check_cancelled(state)
        memory: ConversationMemory = state["memory"]
        analysis = state["analysis"]
        updates: Dict[str, Any] = {
            "last_query": state["query"],
            "last_response": state["response"],
            "tools_used": list(state.get("tool_results") or {}),
            "context_domains": list(analysis.agricultural_domain),
            "query_type": analysis.query_type,
        }
        if analysis.user_location:
            updates["user_location"] = analysis.user_location
        memory.update_context(updates)
        history = [message.model_dump() for message in state["request"].messages]
        history.append({"role": "assistant", "content": state["response"]})
        memory.set_messages(history)
        state = add_trace(state, "state persisted")
        return state
