"""
Billing services.

- SubscriptionResolver: plan activation, cancellation and dunning
"""

from billing.services.subscription_resolver import SubscriptionResolver

__all__ = ["SubscriptionResolver"]
