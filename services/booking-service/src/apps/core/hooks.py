# services/booking-service/src/apps/core/hooks.py
"""
Post-commit side effects.

Work that must not undo an already committed state change (notifications,
event publishing, waitlist promotion) is queued on a PostCommitHooks list
and run after the transaction. Each hook runs independently; a failing hook
is logged and reported, never raised.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class HookResult:
    """Outcome of one post-commit hook."""
    name: str
    success: bool
    result: Any = None
    error: Optional[str] = None


class PostCommitHooks:
    """Ordered list of best-effort callables."""

    def __init__(self):
        self._hooks = []

    def __len__(self):
        return len(self._hooks)

    def add(self, name: str, func: Callable, *args, **kwargs) -> 'PostCommitHooks':
        self._hooks.append((name, func, args, kwargs))
        return self

    def run(self) -> List[HookResult]:
        """Run every hook. A hook returning False counts as failed."""
        results = []
        for name, func, args, kwargs in self._hooks:
            try:
                value = func(*args, **kwargs)
            except Exception as e:
                logger.exception(f"Post-commit hook {name} failed: {e}")
                results.append(HookResult(name=name, success=False, error=str(e)))
                continue

            if value is False:
                logger.warning(f"Post-commit hook {name} reported failure")
                results.append(HookResult(name=name, success=False, result=value))
            else:
                results.append(HookResult(name=name, success=True, result=value))

        self._hooks = []
        return results

    @staticmethod
    def succeeded(results: List[HookResult], name: str) -> bool:
        return any(r.name == name and r.success for r in results)
