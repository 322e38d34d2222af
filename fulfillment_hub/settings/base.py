"""
Base settings for fulfillment_hub project.
Shared between local (single warehouse) and cloud deployments.
"""

from pathlib import Path
import os

from django.urls import reverse_lazy

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-q3v!x0#l2k8m$c7n@fz1w^r5t9y6u4e-fulfillment-hub')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'True').lower() == 'true'

ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', '*').split(',')


# Application definition
INSTALLED_APPS = [
    "unfold",
    "unfold.contrib.filters",
    "unfold.contrib.forms",
    "unfold.contrib.inlines",
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'inventory',
    'production',
    'replenishment',
    'integrations',
    'corsheaders',
    'rest_framework',
    'drf_spectacular',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'fulfillment_hub.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [BASE_DIR / 'templates'],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'fulfillment_hub.wsgi.application'


# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]


# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv('TIME_ZONE', 'Asia/Kolkata')
USE_I18N = True
USE_TZ = True


# Static files
STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


# CORS
CORS_ALLOW_ALL_ORIGINS = True


# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# =============================================================================
# CACHE - Redis when REDIS_URL is set, local memory otherwise
# =============================================================================
REDIS_URL = os.getenv('REDIS_URL', '')

if REDIS_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django_redis.cache.RedisCache',
            'LOCATION': REDIS_URL,
            'OPTIONS': {
                'CLIENT_CLASS': 'django_redis.client.DefaultClient',
            },
            'KEY_PREFIX': 'fulfillment_hub',
            'TIMEOUT': 300,
        }
    }
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'fulfillment-hub',
        }
    }


# =============================================================================
# FULFILLMENT PIPELINE
# =============================================================================
# Worker threads used by bulk operations (advance-all, auto-pick). 1 = inline.
FULFILLMENT_BULK_MAX_WORKERS = int(os.getenv('FULFILLMENT_BULK_MAX_WORKERS', '4'))

# Complete a batch as soon as its last unit leaves the batch stage
FULFILLMENT_AUTO_COMPLETE_BATCHES = os.getenv('FULFILLMENT_AUTO_COMPLETE_BATCHES', 'False').lower() == 'true'


# =============================================================================
# BIN LEDGER
# =============================================================================
# Compare-and-adjust retries before a concurrent bin update gives up
STOCK_CAS_MAX_RETRIES = int(os.getenv('STOCK_CAS_MAX_RETRIES', '5'))

CYCLE_COUNT_MAX_SAMPLE = int(os.getenv('CYCLE_COUNT_MAX_SAMPLE', '100'))


# =============================================================================
# REPLENISHMENT
# =============================================================================
ROP_LOOKBACK_DAYS = int(os.getenv('ROP_LOOKBACK_DAYS', '30'))
ROP_DEFAULT_LEAD_TIME_DAYS = int(os.getenv('ROP_DEFAULT_LEAD_TIME_DAYS', '7'))

# Daily scheduled recalculation (local time)
ROP_SCHEDULE_HOUR = int(os.getenv('ROP_SCHEDULE_HOUR', '6'))
ROP_SCHEDULE_MINUTE = int(os.getenv('ROP_SCHEDULE_MINUTE', '0'))

# A RUNNING job older than this is treated as crashed
ROP_JOB_STALE_SECONDS = int(os.getenv('ROP_JOB_STALE_SECONDS', '3600'))


# =============================================================================
# EXTERNAL SERVICES
# =============================================================================
ORDER_SERVICE_URL = os.getenv('ORDER_SERVICE_URL', 'http://localhost:9001')
ORDER_SERVICE_TOKEN = os.getenv('ORDER_SERVICE_TOKEN', '')

VENDOR_MASTER_URL = os.getenv('VENDOR_MASTER_URL', 'http://localhost:9002')
VENDOR_MASTER_TOKEN = os.getenv('VENDOR_MASTER_TOKEN', '')

EXTERNAL_REQUEST_TIMEOUT = int(os.getenv('EXTERNAL_REQUEST_TIMEOUT', '10'))

# Retry schedule for failed external calls, in minutes after each failure
SYNC_RETRY_DELAYS_MINUTES = [5, 15, 30]
SYNC_BATCH_SIZE = 100


# Unfold Admin Configuration
UNFOLD = {
    "SITE_TITLE": "Fulfillment Hub Admin",
    "SITE_HEADER": "Fulfillment Hub",
    "SITE_URL": "/",
    "SITE_SYMBOL": "warehouse",

    "SIDEBAR": {
        "show_search": True,
        "show_all_applications": True,
        "navigation": [
            {
                "title": "Production",
                "separator": False,
                "items": [
                    {
                        "title": "Units",
                        "icon": "qr_code",
                        "link": reverse_lazy("admin:production_productionunit_changelist"),
                    },
                    {
                        "title": "Batches",
                        "icon": "inventory",
                        "link": reverse_lazy("admin:production_batch_changelist"),
                    },
                    {
                        "title": "Dispatch Manifests",
                        "icon": "local_shipping",
                        "link": reverse_lazy("admin:production_dispatchmanifest_changelist"),
                    },
                ],
            },
            {
                "title": "Inventory",
                "separator": True,
                "items": [
                    {
                        "title": "Bins",
                        "icon": "shelves",
                        "link": reverse_lazy("admin:inventory_bin_changelist"),
                    },
                    {
                        "title": "Stock Movements",
                        "icon": "swap_vert",
                        "link": reverse_lazy("admin:inventory_stockmovement_changelist"),
                    },
                    {
                        "title": "Cycle Counts",
                        "icon": "fact_check",
                        "link": reverse_lazy("admin:inventory_cyclecountsession_changelist"),
                    },
                ],
            },
            {
                "title": "Purchasing",
                "separator": True,
                "items": [
                    {
                        "title": "Replenishment",
                        "icon": "autorenew",
                        "link": reverse_lazy("admin:replenishment_ropitem_changelist"),
                    },
                    {
                        "title": "Purchase Orders",
                        "icon": "receipt_long",
                        "link": reverse_lazy("admin:replenishment_purchaseorder_changelist"),
                    },
                    {
                        "title": "Sync Queue",
                        "icon": "sync_problem",
                        "link": reverse_lazy("admin:integrations_syncqueueitem_changelist"),
                    },
                ],
            },
        ],
    },
}

REST_FRAMEWORK = {
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',

    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
}


SPECTACULAR_SETTINGS = {
    'TITLE': 'Fulfillment Hub',
    'DESCRIPTION': 'Warehouse fulfilment pipeline and replenishment API',
    'VERSION': '1.0.0',
}
