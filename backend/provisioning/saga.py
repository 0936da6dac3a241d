"""
Compensating-action stack for multi-step workflows without a shared transaction.

Each successful step pushes the action that undoes it. On failure the caller
runs the stack most-recent-first; every action is attempted even if an earlier
one fails, and the failures are returned so the caller can decide between
re-raising the original error and raising `PartialFailure`.
"""
from __future__ import annotations

from typing import Callable, List, Tuple
import logging


logger = logging.getLogger("webcapz.provisioning")


class CompensationStack:
    def __init__(self) -> None:
        self._actions: List[Tuple[str, Callable[[], object]]] = []

    def push(self, label: str, action: Callable[[], object]) -> None:
        self._actions.append((label, action))

    def __len__(self) -> int:
        return len(self._actions)

    def run(self) -> List[Exception]:
        """Run all actions in reverse order and return the ones that raised."""
        errors: List[Exception] = []
        while self._actions:
            label, action = self._actions.pop()
            try:
                action()
            except Exception as exc:
                logger.error("Rollback step failed: step=%s error=%s", label, exc.__class__.__name__)
                errors.append(exc)
            else:
                logger.info("Rollback step done: step=%s", label)
        return errors


__all__ = ["CompensationStack"]
