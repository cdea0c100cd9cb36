"""
WSGI config for the payments service.

Webhook reconciliation runs synchronously inside the request, so the
service is deployed behind a WSGI server (gunicorn, uWSGI).

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
