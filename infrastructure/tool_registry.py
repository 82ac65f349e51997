"""
DOCFLOW TOOL REGISTRY - External Tools Behind a Timeout

Named tools (e.g. "web.search") are registered with an optional list of
environment variables they need. Every call runs on a worker thread and is
bounded by a timeout; failures and timeouts come back as ToolResult values.

Usage:
    registry = ToolRegistry(timeout=30.0)
    registry.register("web.search", search_fn, required_auth_env=["TAVILY_API_KEY"])
    result = registry.call("web.search", {"query": "convex auth"})
    if result.success:
        ...
"""
import os
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Callable, Dict, List, Optional

import msgspec

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 30.0


class ToolAuthError(Exception):
    """A registered tool is missing required credentials."""
    pass


class ToolResult(msgspec.Struct, kw_only=True, frozen=True):
    """Outcome of a tool call."""
    success: bool
    data: Any = None
    error: Optional[str] = None


class RegisteredTool(msgspec.Struct, kw_only=True, frozen=True):
    name: str
    handler: Callable[..., Any]
    description: str = ""
    required_auth_env: List[str] = []


class ToolRegistry:
    """Registry of callable tools with a per-call timeout."""

    def __init__(self, timeout: float = DEFAULT_TOOL_TIMEOUT, env: Optional[Dict[str, str]] = None):
        self.timeout = timeout
        self._env = env
        self._tools: Dict[str, RegisteredTool] = {}
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="docflow-tool")

    def register(
        self,
        name: str,
        handler: Callable[..., Any],
        description: str = "",
        required_auth_env: Optional[List[str]] = None,
    ) -> None:
        self._tools[name] = RegisteredTool(
            name=name,
            handler=handler,
            description=description,
            required_auth_env=list(required_auth_env or []),
        )

    def has(self, name: str) -> bool:
        return name in self._tools

    def assert_auth(self, name: str) -> None:
        """Raise ToolAuthError if any required env var of `name` is unset."""
        tool = self._tools.get(name)
        if tool is None or not tool.required_auth_env:
            return
        env = os.environ if self._env is None else self._env
        missing = [k for k in tool.required_auth_env if not env.get(k)]
        if missing:
            raise ToolAuthError(f"Missing required auth env for {name}: {', '.join(missing)}")

    def call(self, name: str, parameters: Dict[str, Any]) -> ToolResult:
        """
        Invoke a tool with keyword parameters.

        Returns:
            ToolResult; unknown tools, missing auth, handler errors and
            timeouts all produce success=False
        """
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult(success=False, error=f"Unknown tool: {name}")
        try:
            self.assert_auth(name)
        except ToolAuthError as e:
            return ToolResult(success=False, error=str(e))

        future = self._executor.submit(tool.handler, **parameters)
        try:
            data = future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            logger.info(f"Tool {name} timed out after {self.timeout}s")
            return ToolResult(success=False, error=f"{name} timed out after {self.timeout}s")
        except Exception as e:
            logger.info(f"Tool {name} failed: {e}")
            return ToolResult(success=False, error=str(e))
        return ToolResult(success=True, data=data)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
