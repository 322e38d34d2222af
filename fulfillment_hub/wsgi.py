import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'fulfillment_hub.settings.local')

application = get_wsgi_application()
