"""
Core application: shared infrastructure for the billing service.

Nothing in this package knows about payments, credits or gateways. It
provides the base classes the domain app builds on.

Models (import from core.models):
    - BaseModel: Abstract model with created_at/updated_at

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID primary key

Services (import from core.services):
    - BaseService: Logger and transaction helpers for service classes
    - ServiceResult: Success/failure wrapper for expected outcomes

Exceptions (import from core.exceptions):
    - BaseApplicationError and its ValidationError, NotFoundError and
      ExternalServiceError subclasses

Views (import from core.views):
    - health_check: Liveness and readiness endpoint

Note:
    Models are not re-exported here to avoid touching the app registry
    at import time.
"""

from .exceptions import (
    BaseApplicationError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from .services import BaseService, ServiceResult

__all__ = [
    "BaseService",
    "ServiceResult",
    "BaseApplicationError",
    "ExternalServiceError",
    "NotFoundError",
    "ValidationError",
]
