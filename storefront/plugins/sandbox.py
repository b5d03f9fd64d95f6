"""
Controller Sandbox

Runs plugin code stored as text (controllers, event listeners, filter hooks)
inside an explicit boundary:

- Source is compiled once and cached by (artifact id, updated_at), so a
  redeploy invalidates the cache entry naturally.
- Before compiling, the source is checked statically: imports, private and
  dunder attribute access and frame introspection are refused.
- It executes against a restricted `__builtins__`; the only capabilities it
  receives are the ones passed to its handler: a parameterized data-access
  handle, the request/response pair and a logger.
- Each invocation has its own database session and a time budget. When the
  budget runs out, or the caller goes away, the invocation is left to finish
  in the background and its result is discarded. Worker threads come from
  the sandbox's own bounded pool, and a plugin holding too many unfinished
  invocations is refused new ones.

Stored code defines a single entry point, sync or async:

    def handler(request, response, context):
        rows = context.db.fetch_all("SELECT ... WHERE store_id = :store_id", {"store_id": request.store_id})
        return response.json({"items": rows})
"""

from __future__ import annotations

import ast
import asyncio
import builtins
import contextvars
import inspect
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import text

from storefront.exceptions import ControllerExecutionError
from storefront.models.plugin import Plugin
from storefront.services import artifact_service

if TYPE_CHECKING:
    from types import CodeType

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from storefront.models.code_artifact import CodeArtifact

logger = logging.getLogger(__name__)

_ALLOWED_BUILTINS = (
    "abs",
    "all",
    "any",
    "bool",
    "dict",
    "divmod",
    "enumerate",
    "filter",
    "float",
    "format",
    "frozenset",
    "int",
    "isinstance",
    "len",
    "list",
    "map",
    "max",
    "min",
    "pow",
    "range",
    "repr",
    "reversed",
    "round",
    "set",
    "slice",
    "sorted",
    "str",
    "sum",
    "tuple",
    "zip",
    "ArithmeticError",
    "Exception",
    "IndexError",
    "KeyError",
    "LookupError",
    "RuntimeError",
    "TypeError",
    "ValueError",
    "ZeroDivisionError",
)

SAFE_BUILTINS: dict[str, Any] = {name: getattr(builtins, name) for name in _ALLOWED_BUILTINS}

# Introspection attributes that lead from a frame, generator or traceback back
# to module globals
BLOCKED_ATTRIBUTES = frozenset(
    {
        "ag_code",
        "ag_frame",
        "co_code",
        "cr_code",
        "cr_frame",
        "f_back",
        "f_builtins",
        "f_code",
        "f_globals",
        "f_locals",
        "gi_code",
        "gi_frame",
        "gi_yieldfrom",
        "tb_frame",
        "tb_next",
    }
)


def check_source(source: str) -> list[str]:
    """
    Statically reject code that could reach past its capabilities.

    Private and dunder attributes (`response.status.__globals__`), dunder
    names, frame introspection attributes, imports and dunders hidden in
    format strings are all refused. Returns the violations, empty when the
    code may run.

    Raises:
        SyntaxError: the source does not parse.
    """
    violations = []
    for node in ast.walk(ast.parse(source)):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            violations.append(f"line {node.lineno}: imports are not allowed")
        elif isinstance(node, ast.Attribute) and (node.attr.startswith("_") or node.attr in BLOCKED_ATTRIBUTES):
            violations.append(f"line {node.lineno}: access to attribute '{node.attr}' is not allowed")
        elif isinstance(node, ast.Name) and node.id.startswith("__"):
            violations.append(f"line {node.lineno}: name '{node.id}' is not allowed")
        elif isinstance(node, ast.Constant) and isinstance(node.value, str) and "__" in node.value:
            violations.append(f"line {node.lineno}: string literals must not contain '__'")
    return violations


# ── Capabilities ──────────────────────────────────────────────────────────────


class DataAccessHandle:
    """Parameterized SQL over the invocation's own session."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def fetch_all(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        result = await self._session.execute(text(sql), params or {})
        return [dict(row._mapping) for row in result]

    async def fetch_one(self, sql: str, params: dict[str, Any] | None = None) -> dict[str, Any] | None:
        result = await self._session.execute(text(sql), params or {})
        row = result.first()
        return dict(row._mapping) if row is not None else None

    async def execute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        """Run a write statement; committed when the handler returns without error."""
        result = await self._session.execute(text(sql), params or {})
        return result.rowcount


class BlockingDataAccessHandle:
    """DataAccessHandle for sync handlers, which run on a worker thread."""

    def __init__(self, handle: DataAccessHandle, loop: asyncio.AbstractEventLoop):
        self._handle = handle
        self._loop = loop

    def _call(self, coro):
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result()

    def fetch_all(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        return self._call(self._handle.fetch_all(sql, params))

    def fetch_one(self, sql: str, params: dict[str, Any] | None = None) -> dict[str, Any] | None:
        return self._call(self._handle.fetch_one(sql, params))

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        return self._call(self._handle.execute(sql, params))


@dataclass
class ControllerRequest:
    method: str = "GET"
    path: str = "/"
    query: dict[str, Any] = field(default_factory=dict)
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    store_id: str | None = None
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class ControllerResponse:
    status_code: int = 200
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)

    def status(self, code: int) -> ControllerResponse:
        self.status_code = int(code)
        return self

    def json(self, body: Any) -> ControllerResponse:
        self.body = body
        self.headers["content-type"] = "application/json"
        return self

    def set_header(self, name: str, value: str) -> ControllerResponse:
        self.headers[name.lower()] = str(value)
        return self


@dataclass
class ControllerContext:
    plugin_id: str
    store_id: str | None
    db: Any
    logger: logging.Logger


@dataclass
class ControllerResult:
    plugin_id: str
    controller_name: str
    ok: bool
    status_code: int
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    error: dict[str, Any] | None = None
    timed_out: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "plugin_id": self.plugin_id,
            "controller_name": self.controller_name,
            "ok": self.ok,
            "status_code": self.status_code,
            "body": self.body,
            "error": self.error,
        }


# ── Sandbox ───────────────────────────────────────────────────────────────────


class ControllerSandbox:
    """Compiles and runs stored handler code with a fixed capability set."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        timeout_seconds: float = 5.0,
        max_workers: int = 16,
        max_pending_per_plugin: int = 4,
    ):
        self._session_factory = session_factory
        self.timeout_seconds = timeout_seconds
        self.max_pending_per_plugin = max_pending_per_plugin
        self._code_cache: dict[tuple[int, Any], CodeType] = {}
        # Strong references to invocations still running after being abandoned
        self._background: set[asyncio.Task] = set()
        # Plugin code never runs on the event loop's default executor
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="plugin-code")
        self._pending: dict[str, int] = {}
        self._pending_lock = threading.Lock()

    def _compile(self, artifact: CodeArtifact) -> CodeType:
        key = (artifact.id, artifact.updated_at)
        code = self._code_cache.get(key)
        if code is None:
            # Older versions of this artifact can never be requested again
            for stale in [k for k in self._code_cache if k[0] == artifact.id]:
                del self._code_cache[stale]
            source = artifact.content or ""
            violations = check_source(source)
            if violations:
                raise ControllerExecutionError(
                    artifact.plugin_id,
                    artifact.controller_name or artifact.natural_key,
                    "Code rejected: " + "; ".join(violations),
                )
            code = compile(source, f"<plugin {artifact.plugin_id}/{artifact.file_name}>", "exec")
            self._code_cache[key] = code
        return code

    @property
    def cache_size(self) -> int:
        return len(self._code_cache)

    def pending(self, plugin_id: str) -> int:
        """Worker-thread calls of this plugin that have not returned yet."""
        with self._pending_lock:
            return self._pending.get(plugin_id, 0)

    def _release(self, plugin_id: str) -> None:
        with self._pending_lock:
            remaining = self._pending.get(plugin_id, 0) - 1
            if remaining > 0:
                self._pending[plugin_id] = remaining
            else:
                self._pending.pop(plugin_id, None)

    async def _in_worker(self, plugin_id: str, name: str, fn, *args):
        """
        Run `fn` on the sandbox's own thread pool.

        Threads cannot be interrupted, so an invocation abandoned on timeout
        keeps its worker until it returns. Each plugin may hold at most
        `max_pending_per_plugin` workers; beyond that calls fail immediately
        and the pool stays available to other plugins.
        """
        with self._pending_lock:
            if self._pending.get(plugin_id, 0) >= self.max_pending_per_plugin:
                raise ControllerExecutionError(
                    plugin_id,
                    name,
                    f"Plugin has {self.max_pending_per_plugin} unfinished invocations; refusing new work",
                )
            self._pending[plugin_id] = self._pending.get(plugin_id, 0) + 1
        try:
            future = self._executor.submit(contextvars.copy_context().run, fn, *args)
        except RuntimeError:
            self._release(plugin_id)
            raise
        future.add_done_callback(lambda _: self._release(plugin_id))
        return await asyncio.wrap_future(future)

    def shutdown(self) -> None:
        """Stop accepting work; threads still running finish on their own."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _failure(self, error: ControllerExecutionError, status_code: int = 500) -> ControllerResult:
        logger.error(
            "Plugin code failed: plugin=%s controller=%s timed_out=%s error=%s",
            error.plugin_id,
            error.controller_name,
            error.timed_out,
            error.message,
            extra={"plugin_id": error.plugin_id, "controller_name": error.controller_name},
        )
        return ControllerResult(
            plugin_id=error.plugin_id,
            controller_name=error.controller_name,
            ok=False,
            status_code=status_code,
            error=error.to_payload(),
            timed_out=error.timed_out,
        )

    async def _run(self, code: CodeType, artifact: CodeArtifact, name: str, request: ControllerRequest) -> ControllerResponse:
        namespace: dict[str, Any] = {
            "__builtins__": SAFE_BUILTINS,
            "__name__": f"storefront_plugin_{artifact.plugin_id}",
        }
        await self._in_worker(artifact.plugin_id, name, exec, code, namespace)
        handler = namespace.get("handler")
        if not callable(handler):
            raise ControllerExecutionError(artifact.plugin_id, name, "Stored code does not define handler()")

        response = ControllerResponse()
        plugin_logger = logging.getLogger(f"storefront.plugins.{artifact.plugin_id}")
        async with self._session_factory() as session:
            handle = DataAccessHandle(session)
            if inspect.iscoroutinefunction(handler):
                context = ControllerContext(artifact.plugin_id, request.store_id, handle, plugin_logger)
                result = await handler(request, response, context)
            else:
                loop = asyncio.get_running_loop()
                context = ControllerContext(
                    artifact.plugin_id, request.store_id, BlockingDataAccessHandle(handle, loop), plugin_logger
                )
                result = await self._in_worker(artifact.plugin_id, name, handler, request, response, context)
            await session.commit()

        if result is not None and result is not response and response.body is None:
            response.body = result
        return response

    def _abandon(self, task: asyncio.Task, plugin_id: str, name: str) -> None:
        def _discard(finished: asyncio.Task) -> None:
            if finished.cancelled():
                logger.debug("Abandoned invocation %s:%s was cancelled", plugin_id, name)
            elif finished.exception() is not None:
                logger.debug("Abandoned invocation %s:%s failed: %s", plugin_id, name, finished.exception())
            else:
                logger.debug("Abandoned invocation %s:%s finished; result discarded", plugin_id, name)

        task.add_done_callback(_discard)

    async def execute(self, artifact: CodeArtifact, request: ControllerRequest) -> ControllerResult:
        """
        Run one artifact's handler and return its result.

        Never raises for faults in the plugin code (syntax errors, a missing
        handler, exceptions, timeouts); those come back as a failed
        ControllerResult. Cancellation of the caller is propagated.
        """
        name = artifact.controller_name or artifact.natural_key
        try:
            code = self._compile(artifact)
        except SyntaxError as e:
            return self._failure(
                ControllerExecutionError(artifact.plugin_id, name, f"SyntaxError: {e.msg} (line {e.lineno})")
            )
        except ControllerExecutionError as e:
            return self._failure(e)

        task = asyncio.create_task(self._run(code, artifact, name, request))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

        try:
            response = await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            self._abandon(task, artifact.plugin_id, name)
            return self._failure(
                ControllerExecutionError(
                    artifact.plugin_id,
                    name,
                    f"Execution exceeded {self.timeout_seconds:g}s",
                    timed_out=True,
                ),
                status_code=504,
            )
        except asyncio.CancelledError:
            self._abandon(task, artifact.plugin_id, name)
            raise
        except ControllerExecutionError as e:
            return self._failure(e)
        except Exception as e:
            return self._failure(
                ControllerExecutionError(artifact.plugin_id, name, f"{type(e).__name__}: {e}")
            )

        return ControllerResult(
            plugin_id=artifact.plugin_id,
            controller_name=name,
            ok=response.status_code < 400,
            status_code=response.status_code,
            body=response.body,
            headers=dict(response.headers),
        )

    async def invoke_controller(
        self, plugin_id: str, controller_name: str, request: ControllerRequest
    ) -> ControllerResult:
        """Look up an active plugin's controller by name and run it."""
        async with self._session_factory() as db:
            plugin = await db.get(Plugin, plugin_id)
            artifact = None
            if plugin is not None and plugin.is_active:
                artifact = await artifact_service.get_controller(db, plugin_id, controller_name)

        if plugin is None or not plugin.is_active:
            reason = "not installed" if plugin is None else f"not active (status: {plugin.status})"
            return self._failure(
                ControllerExecutionError(plugin_id, controller_name, f"Plugin '{plugin_id}' is {reason}"),
                status_code=404,
            )
        if artifact is None:
            return self._failure(
                ControllerExecutionError(plugin_id, controller_name, f"Controller '{controller_name}' not found"),
                status_code=404,
            )
        return await self.execute(artifact, request)

    async def fire_event(self, db: AsyncSession, event_name: str, payload: Any = None) -> list[ControllerResult]:
        """
        Run every enabled listener for `event_name` in load order.

        A failing listener is logged and does not stop the ones after it.
        """
        listeners = await artifact_service.list_handlers(db, "event", event_name)
        store_id = payload.get("store_id") if isinstance(payload, dict) else None
        results = []
        for artifact in listeners:
            request = ControllerRequest(method="EVENT", path=event_name, body=payload, store_id=store_id)
            results.append(await self.execute(artifact, request))
        if listeners:
            logger.info(
                "Event %s dispatched to %d listener(s), %d failed",
                event_name,
                len(results),
                sum(1 for r in results if not r.ok),
            )
        return results

    async def apply_filters(self, db: AsyncSession, hook_name: str, value: Any) -> Any:
        """
        Pass `value` through every enabled filter hook for `hook_name`.

        Each hook receives the previous hook's output as `request.body` and
        returns the new value. A failing hook is skipped and the value it
        received is passed on unchanged.
        """
        hooks = await artifact_service.list_handlers(db, "hook", hook_name)
        for artifact in hooks:
            result = await self.execute(artifact, ControllerRequest(method="FILTER", path=hook_name, body=value))
            if result.ok and result.body is not None:
                value = result.body
        return value
