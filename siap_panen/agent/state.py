"""
LangGraph state shared between the chat pipeline nodes.
"""

from threading import Event
from typing import Any, Dict, List, Optional, TypedDict

from ..infra.memory_store import ConversationMemory
from ..schemas import ChatRequest, ContextAnalysis, ExecutionPlan


class ChatState(TypedDict, total=False):
    """State for one chat turn, from the raw request to the persisted reply."""

    request: ChatRequest
    memory: ConversationMemory
    cancel_event: Optional[Event]
    trace: List[str]
    query: str
    prior_context: Dict[str, Any]
    analysis: ContextAnalysis
    plan: ExecutionPlan
    tool_results: Dict[str, Any]
    response: str


def add_trace(state: ChatState, message: str) -> ChatState:
    """Append a message to the pipeline trace."""
    trace = list(state.get("trace") or [])
    trace.append(message)
    return {**state, "trace": trace}
