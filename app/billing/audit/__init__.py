"""
Audit and notification sink.

Side effects that follow a committed ledger mutation: the audit log entry
and the best-effort user notification. Neither can fail the caller.

Usage:
    from billing.audit import AuditSink, PostCommitHooks

    hooks = PostCommitHooks()
    hooks.add(AuditSink.record, user_id, AuditEventType.PAYMENT_COMPLETED, payload)
    hooks.add(AuditSink.notify, user_id, "payment_confirmation", data)
    hooks.register()  # inside the transaction; runs after COMMIT
"""

from billing.audit.hooks import PostCommitHooks
from billing.audit.sink import AuditSink

__all__ = ["AuditSink", "PostCommitHooks"]
