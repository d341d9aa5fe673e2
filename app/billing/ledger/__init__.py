"""
Credit ledger.

The authoritative credit balance of every user: an append-only
CreditTransaction log plus the denormalized UserAccount.credits counter,
always changed together in one database transaction.

Public API:
    billing.ledger.services.CreditLedger - apply/consume/read/reconcile
    billing.ledger.models.CreditTransaction - ledger entry model
    billing.ledger.types.BalanceCheck - reconciliation result
    billing.ledger.exceptions - LedgerError hierarchy

Usage:
    from billing.ledger.services import CreditLedger
    from billing.state_machines import CreditTransactionType

    CreditLedger.apply_credit(
        user_id=user.id,
        amount=30,
        type=CreditTransactionType.PURCHASE,
        description="Purchase of 30 credits",
        reference_id=str(payment_record.id),
    )
"""
