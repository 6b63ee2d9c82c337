"""Base settings for Booking Service."""
import os
import sys
from pathlib import Path

from celery.schedules import crontab

BASE_DIR = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(BASE_DIR.parent.parent.parent))

SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key')
DEBUG = os.environ.get('DEBUG', 'True').lower() == 'true'
ALLOWED_HOSTS = os.environ.get('ALLOWED_HOSTS', '*').split(',')

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'apps.core',
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.environ.get('DB_NAME', 'booking_service_db'),
        'USER': os.environ.get('DB_USER', 'booking_service_user'),
        'PASSWORD': os.environ.get('DB_PASSWORD', 'booking_service_password'),
        'HOST': os.environ.get('DB_HOST', 'pgbouncer'),
        'PORT': os.environ.get('DB_PORT', '6432'),
    }
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

REDIS_URL = os.environ.get('REDIS_URL', 'redis://redis:6379/4')
CACHES = {'default': {'BACKEND': 'django_redis.cache.RedisCache', 'LOCATION': REDIS_URL}}

# Celery
CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', REDIS_URL)
CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND', REDIS_URL)
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TIME_LIMIT = 300  # 5 minutes
CELERY_BEAT_SCHEDULE = {
    'expire-stale-waitlist-entries': {
        'task': 'apps.core.tasks.expire_stale_waitlist_entries',
        'schedule': crontab(minute=0),  # Hourly
    },
}

SERVICE_NAME = 'booking-service'
SERVICE_PORT = 8005
SERVICE_AUTH_TOKEN = os.environ.get('SERVICE_AUTH_TOKEN', '')
SERVICE_URLS = {
    'notification-service': os.environ.get(
        'NOTIFICATION_SERVICE_URL', 'http://notification-service:8000'
    ),
}

# Events
EVENT_PUBLISHING_ENABLED = os.environ.get('EVENT_PUBLISHING_ENABLED', 'True').lower() == 'true'
EVENT_BACKEND = os.environ.get('EVENT_BACKEND', 'log')  # log, redis

# Notifications
NOTIFICATION_BACKEND = os.environ.get('NOTIFICATION_BACKEND', 'log')  # log, http
ADMIN_NOTIFICATION_EMAIL = os.environ.get('ADMIN_NOTIFICATION_EMAIL', 'admin@example.com')
FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:3000')

# Slots
# When enabled, booking a (service, date, window) with no slot record
# proceeds without a claim instead of failing with SlotNotFoundError.
SLOT_FALLBACK_ENABLED = os.environ.get('SLOT_FALLBACK_ENABLED', 'False').lower() == 'true'
SLOT_GENERATION_MAX_DAYS = 366

# Bookings
BOOKING_REFERENCE_LENGTH = 8
BOOKING_REFERENCE_MAX_ATTEMPTS = 10

# Recurrence
RECURRENCE_MAX_OCCURRENCES = 52
RECURRENCE_DEFAULT_OCCURRENCES = 10

# Waitlist
WAITLIST_PROMOTION_LIMIT = 3
WAITLIST_DEFAULT_EXPIRY_DAYS = 30
WAITLIST_MAX_PRIORITY = 10

LOGGING = {'version': 1, 'disable_existing_loggers': False, 'formatters': {'json': {'()': 'pythonjsonlogger.jsonlogger.JsonFormatter', 'format': '%(asctime)s %(levelname)s %(name)s %(message)s'}}, 'handlers': {'console': {'class': 'logging.StreamHandler', 'formatter': 'json'}}, 'root': {'handlers': ['console'], 'level': 'INFO'}}
