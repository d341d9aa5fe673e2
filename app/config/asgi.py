"""
ASGI entry point.

Served by Uvicorn in containers. Webhook and ledger views are synchronous;
Django runs them in a thread pool under ASGI, one delivery per request.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_asgi_application()
