"""
Naming Registry - stable, human-readable node names per node type.

Names have the form ``{type}_{n}``. Counters only move forward for the
lifetime of a workflow session, so a deleted node's name is never handed
out again while other nodes may still reference it in their params.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional


logger = logging.getLogger(__name__)


class NamingRegistry:
    """
    Per-type ordinal counters.

    Usage:
        names = NamingRegistry()
        names.allocate("input")   # "input_0"
        names.allocate("input")   # "input_1"
    """

    def __init__(self, counters: Optional[Dict[str, int]] = None):
        self._counters: Dict[str, int] = dict(counters or {})

    def allocate(self, node_type: str) -> str:
        """Return the next unused name for ``node_type`` and advance its counter."""
        counter = self._counters.get(node_type, 0)
        self._counters[node_type] = counter + 1
        return f"{node_type}_{counter}"

    def peek(self, node_type: str) -> str:
        """Name the next ``allocate`` call would return, without allocating."""
        return f"{node_type}_{self._counters.get(node_type, 0)}"

    def observe(self, name: str, node_type: str) -> None:
        """
        Account for an existing ``{type}_{n}`` name, e.g. from a loaded workflow.

        Raises the counter past ``n``; never lowers it. Names that do not
        follow the pattern are ignored.
        """
        prefix = f"{node_type}_"
        if not name.startswith(prefix):
            return
        suffix = name[len(prefix):]
        if not suffix.isdigit():
            return
        ordinal = int(suffix)
        if ordinal + 1 > self._counters.get(node_type, 0):
            self._counters[node_type] = ordinal + 1
            logger.debug(f"Counter for '{node_type}' raised to {ordinal + 1}")

    def reset(self) -> None:
        """Clear all counters. Only for starting a new workflow session."""
        self._counters.clear()

    @property
    def counters(self) -> Dict[str, int]:
        """Copy of the current counters."""
        return dict(self._counters)


__all__ = ["NamingRegistry"]
