"""
WSGI config for country_currency project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'country_currency.settings')

application = get_wsgi_application()
