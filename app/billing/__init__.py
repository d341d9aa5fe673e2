"""
Billing app: webhook reconciliation and credit ledger.

Turns at-least-once, out-of-order payment notifications from Stripe and
Mercado Pago into one consistent per-user credit balance and subscription
state.

Subpackages:
    - webhooks: signature verification, idempotency guard, payment state
      machine, HTTP endpoints
    - gateways: adapters that parse notifications and fetch payment details
    - ledger: CreditTransaction log and the CreditLedger service
    - services: SubscriptionResolver
    - audit: audit log sink and post-commit hooks

Usage:
    from billing.ledger.services import CreditLedger

    CreditLedger.get_balance(user.id)
"""
