"""
Post-commit hook list.

Reconciliation collects its side effects (audit record, notification) in
a PostCommitHooks list while it mutates state, then registers the list
with the surrounding transaction. Django runs the hooks only if the
transaction commits; on rollback they are discarded.

Each hook runs in isolation: an exception in one is logged and the rest
still run.
"""

from __future__ import annotations

import functools
import logging
from typing import TYPE_CHECKING

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

logger = logging.getLogger(__name__)


class PostCommitHooks:
    """
    Ordered list of callables to run after the current transaction commits.

    Example:
        hooks = PostCommitHooks()
        with transaction.atomic():
            record = PaymentRecord.objects.create(...)
            hooks.add(AuditSink.record, user_id, event_type, payload)
            hooks.register()
    """

    def __init__(self) -> None:
        self._hooks: list[Callable[[], Any]] = []

    def __len__(self) -> int:
        return len(self._hooks)

    def add(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self._hooks.append(functools.partial(func, *args, **kwargs))

    def run(self) -> None:
        """Run every hook now, logging (not raising) failures."""
        for hook in self._hooks:
            try:
                hook()
            except Exception:
                logger.exception(
                    "Post-commit hook failed",
                    extra={"hook": getattr(hook.func, "__qualname__", repr(hook))},
                )

    def register(self, using: str | None = None) -> None:
        """
        Schedule the hooks to run after the current transaction commits.

        Outside a transaction (autocommit) Django runs them immediately.
        """
        if not self._hooks:
            return
        transaction.on_commit(self.run, using=using)
