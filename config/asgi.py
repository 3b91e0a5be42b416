import os

from django.core.asgi import get_asgi_application

from config.structlog_config import configure_from_settings

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
configure_from_settings()

application = get_asgi_application()
