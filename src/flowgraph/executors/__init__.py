"""
Node executors - the external capability table the orchestrator dispatches to.
"""

from .registry import (
    ExecutorRegistry,
    FunctionExecutor,
    NodeExecutor,
    TimeoutExecutor,
    invoke_executor,
    with_timeout,
)
from .builtin import create_default_registry, register_builtin_executors

__all__ = [
    "ExecutorRegistry",
    "FunctionExecutor",
    "NodeExecutor",
    "TimeoutExecutor",
    "invoke_executor",
    "with_timeout",
    "create_default_registry",
    "register_builtin_executors",
]
