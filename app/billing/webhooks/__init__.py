"""
Webhook intake: signature verification, idempotency and reconciliation.
"""
