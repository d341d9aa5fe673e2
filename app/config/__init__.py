# =============================================================================
# Django project configuration package
# =============================================================================
# Importing the Celery app here makes shared_task bind to it and lets the
# worker auto-discover billing.tasks when Django starts.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
