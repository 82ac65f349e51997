"""
DOCFLOW CONTEXT STORE - Session Documents, Keyed by Session Id

A minimal key-value interface over one structured document per session:

    get(session_id)               -> SessionContext | None
    set(session)                  -> None
    update(session_id, updater)   -> SessionContext    (read-modify-write)
    delete(session_id)            -> None

Backends:
- InMemoryContextStore: process-local dict (tests, DOCFLOW_STORE=memory)
- FileContextStore: one JSON file per session under ~/.docflow/sessions
- ConvexContextStore: remote Convex deployment over its HTTP API

Chat-log mirroring:
    An updater may add the transient key APPEND_MESSAGE_KEY to the document it
    returns. The key is never persisted. Stores with a separate messages table
    (Convex) additionally append its payload there; the others drop it.
"""
import os
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import msgspec
import requests

from core.schemas import now_utc

logger = logging.getLogger(__name__)

APPEND_MESSAGE_KEY = "__appendMessage"

Updater = Callable[[Dict[str, Any]], Dict[str, Any]]


class StoreConfigurationError(Exception):
    """The selected store cannot be constructed from the given configuration."""
    pass


class StoreError(Exception):
    """A store operation failed (remote error, unreadable document)."""
    pass


class SessionContext(msgspec.Struct, kw_only=True, rename="camel"):
    """Stored record: the document plus bookkeeping timestamps."""
    id: str
    data: Dict[str, Any] = {}
    created_at: str = ""
    updated_at: str = ""


def split_marker(data: Dict[str, Any]) -> tuple:
    """Return (document without the mirroring marker, marker payload or None)."""
    if APPEND_MESSAGE_KEY not in data:
        return data, None
    document = dict(data)
    message = document.pop(APPEND_MESSAGE_KEY)
    return document, message


class ContextStore:
    """Interface shared by all store backends."""

    def get(self, session_id: str) -> Optional[SessionContext]:
        raise NotImplementedError

    def set(self, session: SessionContext) -> None:
        raise NotImplementedError

    def update(self, session_id: str, updater: Updater) -> SessionContext:
        raise NotImplementedError

    def delete(self, session_id: str) -> None:
        raise NotImplementedError

    def _next(self, session_id: str, existing: Optional[SessionContext], updater: Updater) -> tuple:
        """Apply an updater to the existing record. Returns (record, marker)."""
        now = now_utc()
        data, message = split_marker(updater(dict(existing.data) if existing else {}))
        if existing is None:
            return SessionContext(id=session_id, data=data, created_at=now, updated_at=now), message
        return SessionContext(id=session_id, data=data, created_at=existing.created_at, updated_at=now), message


# =============================================================================
# IN-MEMORY
# =============================================================================

class InMemoryContextStore(ContextStore):
    def __init__(self):
        self._store: Dict[str, SessionContext] = {}

    def get(self, session_id):
        return self._store.get(session_id)

    def set(self, session):
        data, _ = split_marker(session.data)
        self._store[session.id] = msgspec.structs.replace(session, data=data)

    def update(self, session_id, updater):
        record, _ = self._next(session_id, self._store.get(session_id), updater)
        self._store[session_id] = record
        return record

    def delete(self, session_id):
        self._store.pop(session_id, None)


# =============================================================================
# FILESYSTEM
# =============================================================================

class FileContextStore(ContextStore):
    """
    One JSON document per session: <root>/<session_id>.json

    The directory is created on first write. Writes go through a temporary
    file and os.replace so a crash never leaves a half-written document.
    """

    def __init__(self, root_dir: Optional[str] = None):
        self.root_dir = Path(root_dir or Path.home() / ".docflow" / "sessions").expanduser()
        self._decoder = msgspec.json.Decoder(type=SessionContext)

    def _path(self, session_id: str) -> Path:
        # Ids name a file directly under root_dir
        if not session_id or ".." in session_id or "/" in session_id or "\\" in session_id:
            raise StoreError(f"Invalid session id: {session_id!r}")
        return self.root_dir / f"{session_id}.json"

    def get(self, session_id):
        path = self._path(session_id)
        if not path.exists():
            return None
        try:
            return self._decoder.decode(path.read_bytes())
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            raise StoreError(f"Unreadable session document {path}: {e}") from e

    def _write(self, session: SessionContext) -> None:
        self.root_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(session.id)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_bytes(msgspec.json.format(msgspec.json.encode(session), indent=2))
        os.replace(tmp, path)

    def set(self, session):
        data, _ = split_marker(session.data)
        self._write(msgspec.structs.replace(session, data=data))

    def update(self, session_id, updater):
        record, _ = self._next(session_id, self.get(session_id), updater)
        self._write(record)
        return record

    def delete(self, session_id):
        self._path(session_id).unlink(missing_ok=True)


# =============================================================================
# CONVEX
# =============================================================================

class ConvexHTTPClient:
    """Calls Convex functions through the deployment HTTP API (POST /api/query, /api/mutation, /api/action)."""

    def __init__(self, url: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.url = url.rstrip("/")
        self.timeout = timeout
        self._http = session or requests.Session()

    def _call(self, kind: str, path: str, args: Dict[str, Any]) -> Any:
        try:
            response = self._http.post(
                f"{self.url}/api/{kind}",
                json={"path": path, "args": args, "format": "json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            raise StoreError(f"Convex {kind} {path} failed: {e}") from e

        if body.get("status") != "success":
            raise StoreError(f"Convex {kind} {path} failed: {body.get('errorMessage', 'unknown error')}")
        return body.get("value")

    def query(self, path: str, args: Dict[str, Any]) -> Any:
        return self._call("query", path, args)

    def mutation(self, path: str, args: Dict[str, Any]) -> Any:
        return self._call("mutation", path, args)

    def action(self, path: str, args: Dict[str, Any]) -> Any:
        return self._call("action", path, args)


class ConvexContextStore(ContextStore):
    """
    Sessions stored in a Convex deployment.

    Functions used:
        contexts:getSession              {sessionId}
        contexts:upsertSession           {sessionId, data}
        contexts:deleteSession           {sessionId}
        docflow/messages:appendMessage   {sessionId, role, content, timestamp, agentId?, chunk?}
        docflow/messages:listMessages    {sessionId}
    """

    def __init__(self, url: Optional[str] = None, timeout: float = 30.0, session: Optional[requests.Session] = None):
        if not url:
            raise StoreConfigurationError("Convex URL not configured. Set DOCFLOW_CONVEX_ADMIN_URL in .env")
        self.client = ConvexHTTPClient(url, timeout=timeout, session=session)

    def get(self, session_id):
        record = self.client.query("contexts:getSession", {"sessionId": session_id})
        if not record:
            return None
        return SessionContext(
            id=record.get("sessionId", session_id),
            data=record.get("data") or {},
            created_at=str(record.get("createdAt", "")),
            updated_at=str(record.get("updatedAt", "")),
        )

    def set(self, session):
        data, _ = split_marker(session.data)
        self.client.mutation("contexts:upsertSession", {"sessionId": session.id, "data": data})

    def update(self, session_id, updater):
        existing = self.get(session_id)
        record, message = self._next(session_id, existing, updater)
        self.client.mutation("contexts:upsertSession", {"sessionId": session_id, "data": record.data})
        if message:
            self.append_message(session_id, message)
        return self.get(session_id) or record

    def delete(self, session_id):
        self.client.mutation("contexts:deleteSession", {"sessionId": session_id})

    def append_message(self, session_id: str, message: Dict[str, Any]) -> None:
        args = {"sessionId": session_id}
        args.update({k: v for k, v in message.items() if v is not None})
        self.client.mutation("docflow/messages:appendMessage", args)

    def list_messages(self, session_id: str) -> list:
        return self.client.query("docflow/messages:listMessages", {"sessionId": session_id}) or []


# =============================================================================
# FACTORY
# =============================================================================

def create_context_store(
    backend: str = "file",
    sessions_dir: Optional[str] = None,
    convex_url: Optional[str] = None,
) -> ContextStore:
    """
    Build the configured store.

    Raises:
        StoreConfigurationError: unknown backend, or convex without a URL
    """
    backend = (backend or "file").lower()
    if backend == "memory":
        return InMemoryContextStore()
    if backend == "file":
        return FileContextStore(sessions_dir)
    if backend == "convex":
        return ConvexContextStore(convex_url)
    raise StoreConfigurationError(f"Unknown store backend: {backend!r} (expected file, convex or memory)")
