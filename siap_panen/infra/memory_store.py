"""Per-conversation state with TTL expiry and per-key serialized writes."""

from __future__ import annotations

import json
import secrets
import sqlite3
import string
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from ..observability.logging_utils import log_error, log_event
from ..schemas import ConversationState, ToolCall, UserPreferences
from .config import AppConfig, get_config


_ID_ALPHABET = string.digits + string.ascii_lowercase
DEFAULT_TOOL_HISTORY_LIMIT = 20
SQLITE_ATTEMPTS = 3
SQLITE_BACKOFF_SECONDS = 0.05

Mutation = Callable[[ConversationState], None]


class ConversationStoreError(RuntimeError):
    """The backing store stayed unavailable after retrying."""


def generate_conversation_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"conv_{int(time.time() * 1000)}_{suffix}"


class _KeyedLocks:
    """One lock per key, dropped once no thread holds or waits on it."""

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: Dict[str, Lock] = {}
        self._users: Dict[str, int] = {}

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, Lock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if not self._users[key]:
                    del self._users[key]
                    del self._locks[key]


def _decode_state(payload: Any) -> Optional[ConversationState]:
    if not isinstance(payload, dict):
        return None
    try:
        return ConversationState.model_validate(payload)
    except ValidationError:
        return None


class ConversationStore:
    """Backend contract: ``get``/``set``/``delete`` plus locked read-modify-write."""

    def __init__(self) -> None:
        self._keyed_locks = _KeyedLocks()

    def get(self, conversation_id: str) -> Optional[ConversationState]:
        raise NotImplementedError

    def set(self, state: ConversationState) -> None:
        raise NotImplementedError

    def delete(self, conversation_id: str) -> None:
        raise NotImplementedError

    def get_or_create(self, conversation_id: str) -> Tuple[ConversationState, bool]:
        with self._keyed_locks.hold(conversation_id):
            state = self.get(conversation_id)
            if state is not None:
                return state, False
            state = ConversationState(conversation_id=conversation_id)
            self.set(state)
            return state, True

    def update(self, conversation_id: str, mutate: Mutation) -> ConversationState:
        with self._keyed_locks.hold(conversation_id):
            state = self.get(conversation_id) or ConversationState(
                conversation_id=conversation_id
            )
            mutate(state)
            state.updated_at = max(datetime.now(), state.created_at)
            self.set(state)
            return state


class InMemoryConversationStore(ConversationStore):
    def __init__(self, ttl_seconds: int = 30 * 86400) -> None:
        super().__init__()
        self._ttl_seconds = max(1, int(ttl_seconds))
        self._items: Dict[str, Tuple[dict, int]] = {}
        self._lock = Lock()

    def get(self, conversation_id: str) -> Optional[ConversationState]:
        now = int(time.time())
        with self._lock:
            item = self._items.get(conversation_id)
            if not item:
                return None
            payload, expires_at = item
            if expires_at <= now:
                self._items.pop(conversation_id, None)
                return None
        return _decode_state(payload)

    def set(self, state: ConversationState) -> None:
        payload = state.model_dump(mode="json")
        now = int(time.time())
        with self._lock:
            self._sweep(now)
            self._items[state.conversation_id] = (payload, now + self._ttl_seconds)

    def _sweep(self, now: int) -> None:
        expired = [key for key, (_, expires_at) in self._items.items() if expires_at <= now]
        for key in expired:
            del self._items[key]

    def size(self) -> int:
        with self._lock:
            return len(self._items)

    def delete(self, conversation_id: str) -> None:
        with self._lock:
            self._items.pop(conversation_id, None)


class SqliteConversationStore(ConversationStore):
    def __init__(
        self,
        path: Path,
        ttl_seconds: int = 30 * 86400,
        *,
        attempts: int = SQLITE_ATTEMPTS,
        backoff_seconds: float = SQLITE_BACKOFF_SECONDS,
    ) -> None:
        super().__init__()
        self._path = path
        self._ttl_seconds = max(1, int(ttl_seconds))
        self._attempts = max(1, attempts)
        self._backoff_seconds = backoff_seconds
        self._lock = Lock()
        self._retrying(self._init_db)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._path, timeout=5.0)

    def _init_db(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS conversations ("
                "conversation_id TEXT PRIMARY KEY, "
                "payload TEXT NOT NULL, "
                "expires_at INTEGER NOT NULL)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_conversations_expires "
                "ON conversations (expires_at)"
            )

    def _retrying(self, operation: Callable[[], Any]) -> Any:
        for attempt in range(self._attempts):
            try:
                return operation()
            except sqlite3.OperationalError as exc:
                if attempt + 1 >= self._attempts:
                    log_error("conversation_store_error", path=str(self._path), error=str(exc))
                    raise ConversationStoreError(
                        f"conversation store unavailable: {exc}"
                    ) from exc
                time.sleep(self._backoff_seconds * (2 ** attempt))
        return None

    def get(self, conversation_id: str) -> Optional[ConversationState]:
        return self._retrying(lambda: self._get(conversation_id))

    def _get(self, conversation_id: str) -> Optional[ConversationState]:
        now = int(time.time())
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT payload, expires_at FROM conversations WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()
            if not row:
                return None
            payload_json, expires_at = row
            if expires_at <= now:
                conn.execute(
                    "DELETE FROM conversations WHERE conversation_id = ?",
                    (conversation_id,),
                )
                return None
        try:
            payload = json.loads(payload_json)
        except json.JSONDecodeError:
            return None
        return _decode_state(payload)

    def set(self, state: ConversationState) -> None:
        payload_json = json.dumps(
            state.model_dump(mode="json"), ensure_ascii=True, default=str
        )
        expires_at = int(time.time()) + self._ttl_seconds

        def _write() -> None:
            with self._lock, self._connect() as conn:
                conn.execute(
                    "INSERT INTO conversations (conversation_id, payload, expires_at) "
                    "VALUES (?, ?, ?) "
                    "ON CONFLICT(conversation_id) DO UPDATE SET "
                    "payload = excluded.payload, "
                    "expires_at = excluded.expires_at",
                    (state.conversation_id, payload_json, expires_at),
                )
                conn.execute(
                    "DELETE FROM conversations WHERE expires_at <= ?",
                    (int(time.time()),),
                )

        self._retrying(_write)

    def delete(self, conversation_id: str) -> None:
        def _delete() -> None:
            with self._lock, self._connect() as conn:
                conn.execute(
                    "DELETE FROM conversations WHERE conversation_id = ?",
                    (conversation_id,),
                )

        self._retrying(_delete)


def build_conversation_store(cfg: Optional[AppConfig] = None) -> ConversationStore:
    cfg = cfg or get_config()
    store = (cfg.conversation_store or "memory").lower()
    ttl_seconds = int(cfg.conversation_store_ttl_days) * 86400
    if store == "sqlite":
        if cfg.conversation_store_path:
            path = Path(cfg.conversation_store_path)
        else:
            root = Path(__file__).resolve().parents[2]
            path = root / ".cache" / "conversations.sqlite3"
        return SqliteConversationStore(path=path, ttl_seconds=ttl_seconds)
    return InMemoryConversationStore(ttl_seconds=ttl_seconds)


class ConversationMemory:
    """Handle on one conversation's state inside a ``ConversationStore``."""

    def __init__(
        self,
        store: ConversationStore,
        conversation_id: Optional[str] = None,
        *,
        tool_history_limit: int = DEFAULT_TOOL_HISTORY_LIMIT,
    ) -> None:
        self._store = store
        self._conversation_id = conversation_id or generate_conversation_id()
        self._tool_history_limit = max(1, int(tool_history_limit))

    def get_conversation_id(self) -> str:
        return self._conversation_id

    def load_state(self) -> ConversationState:
        state, created = self._store.get_or_create(self._conversation_id)
        if created:
            log_event("conversation_created", conversation_id=self._conversation_id)
        return state

    def update_context(self, updates: Mapping[str, Any]) -> ConversationState:
        def _merge(state: ConversationState) -> None:
            state.context = {**state.context, **dict(updates)}

        return self._store.update(self._conversation_id, _merge)

    def add_tool_call(self, call: ToolCall) -> ConversationState:
        limit = self._tool_history_limit

        def _append(state: ConversationState) -> None:
            state.tool_history = (state.tool_history + [call])[-limit:]

        return self._store.update(self._conversation_id, _append)

    def set_messages(self, messages: List[Dict[str, Any]]) -> ConversationState:
        def _replace(state: ConversationState) -> None:
            state.messages = [dict(message) for message in messages]

        return self._store.update(self._conversation_id, _replace)

    def update_preferences(self, **fields: Any) -> ConversationState:
        def _merge(state: ConversationState) -> None:
            merged = {
                **state.user_preferences.model_dump(),
                **{key: value for key, value in fields.items() if value is not None},
            }
            state.user_preferences = UserPreferences.model_validate(merged)

        return self._store.update(self._conversation_id, _merge)
