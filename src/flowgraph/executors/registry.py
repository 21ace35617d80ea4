"""
Executor Registry - maps node types to the capability that runs them.

The orchestrator knows nothing about node-type semantics. It looks up the
executor registered for ``node.type`` and relies only on the contract:

    execute(resolved_params) -> mapping of output fields   (or raises)

Executors may be plain callables or coroutine functions. Adding a node type
means registering an executor here, never touching the orchestrator.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
    runtime_checkable,
)

from ..errors import NodeExecutionError


logger = logging.getLogger(__name__)

ExecutorResult = Union[Mapping[str, Any], Awaitable[Mapping[str, Any]]]


@runtime_checkable
class NodeExecutor(Protocol):
    """Protocol for node executors."""

    output_fields: Sequence[str]
    required_params: Sequence[str]

    def execute(self, params: Dict[str, Any]) -> ExecutorResult:
        """
        Execute a node.

        Args:
            params: Node params with every variable reference resolved

        Returns:
            Output fields, e.g. {"response": "..."}; may be awaitable

        Raises:
            NodeExecutionError: or any exception; the node is marked failed
        """
        ...


class FunctionExecutor:
    """
    Executor backed by a plain function or coroutine function.
    """

    def __init__(
        self,
        func: Callable[[Dict[str, Any]], ExecutorResult],
        output_fields: Sequence[str] = ("output",),
        required_params: Sequence[str] = (),
    ):
        self._func = func
        self.output_fields: Tuple[str, ...] = tuple(output_fields)
        self.required_params: Tuple[str, ...] = tuple(required_params)

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self._func)

    def execute(self, params: Dict[str, Any]) -> ExecutorResult:
        return self._func(params)

    def __repr__(self) -> str:
        return f"FunctionExecutor({getattr(self._func, '__name__', self._func)!r})"


class TimeoutExecutor:
    """
    Wraps an executor with a per-node time limit.

    Expiry is reported as NodeExecutionError, like any other node failure.
    """

    def __init__(self, inner: NodeExecutor, timeout_s: float):
        self._inner = inner
        self._timeout_s = timeout_s
        self.output_fields = tuple(getattr(inner, "output_fields", ()))
        self.required_params = tuple(getattr(inner, "required_params", ()))

    @property
    def is_async(self) -> bool:
        return True

    async def execute(self, params: Dict[str, Any]) -> Mapping[str, Any]:
        try:
            return await asyncio.wait_for(
                invoke_executor(self._inner, params),
                timeout=self._timeout_s,
            )
        except asyncio.TimeoutError:
            raise NodeExecutionError(
                f"Node execution timed out after {self._timeout_s}s"
            )


def with_timeout(executor: NodeExecutor, timeout_s: float) -> TimeoutExecutor:
    """Return ``executor`` limited to ``timeout_s`` seconds per call."""
    return TimeoutExecutor(executor, timeout_s)


def _is_async_executor(executor: Any) -> bool:
    flag = getattr(executor, "is_async", None)
    if isinstance(flag, bool):
        return flag
    return inspect.iscoroutinefunction(getattr(executor, "execute", None))


async def invoke_executor(executor: NodeExecutor, params: Dict[str, Any]) -> Mapping[str, Any]:
    """
    Call ``executor`` and return its output mapping.

    Coroutine executors are awaited; synchronous ones run in a worker thread
    so independent branches can overlap.
    """
    if _is_async_executor(executor):
        result = await executor.execute(params)
    else:
        result = await asyncio.to_thread(executor.execute, params)
        if inspect.isawaitable(result):
            result = await result

    if not isinstance(result, Mapping):
        raise NodeExecutionError(
            f"Executor returned {type(result).__name__}, expected a mapping of output fields"
        )
    return result


class ExecutorRegistry:
    """
    Registry of node executors keyed by node type.

    Usage:
        registry = ExecutorRegistry()

        @registry.executor("input", output_fields=("text",))
        def run_input(params):
            return {"text": params.get("value", "")}

        registry.get("input").execute({"value": "hi"})
    """

    def __init__(self, executors: Optional[Dict[str, NodeExecutor]] = None):
        self._executors: Dict[str, NodeExecutor] = dict(executors or {})

    def register(self, node_type: str, executor: Union[NodeExecutor, Callable[..., Any]]) -> NodeExecutor:
        """
        Register an executor for a node type.

        Args:
            node_type: Node type identifier
            executor: NodeExecutor, or a plain function wrapped with defaults

        Returns:
            The registered executor
        """
        if not hasattr(executor, "execute"):
            executor = FunctionExecutor(executor)
        if node_type in self._executors:
            logger.info(f"Executor for '{node_type}' replaced")
        self._executors[node_type] = executor
        logger.debug(f"Registered executor: {node_type}")
        return executor

    def executor(
        self,
        node_type: str,
        output_fields: Sequence[str] = ("output",),
        required_params: Sequence[str] = (),
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator registering a function as the executor for ``node_type``."""
        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.register(
                node_type,
                FunctionExecutor(func, output_fields=output_fields, required_params=required_params),
            )
            return func
        return decorator

    def unregister(self, node_type: str) -> None:
        self._executors.pop(node_type, None)

    def get(self, node_type: str) -> Optional[NodeExecutor]:
        """Get the executor for a node type, or None."""
        return self._executors.get(node_type)

    def __contains__(self, node_type: str) -> bool:
        return node_type in self._executors

    def types(self) -> List[str]:
        """List registered node types."""
        return list(self._executors.keys())

    def output_fields(self, node_type: str) -> Tuple[str, ...]:
        """Declared output fields of a node type; empty if unknown."""
        executor = self._executors.get(node_type)
        if executor is None:
            return ()
        return tuple(getattr(executor, "output_fields", ()))

    def required_params(self, node_type: str) -> Tuple[str, ...]:
        """Declared required params of a node type; empty if unknown."""
        executor = self._executors.get(node_type)
        if executor is None:
            return ()
        return tuple(getattr(executor, "required_params", ()))


__all__ = [
    "NodeExecutor",
    "FunctionExecutor",
    "TimeoutExecutor",
    "ExecutorRegistry",
    "invoke_executor",
    "with_timeout",
]
