"""
Django settings for the AI crawler redirect site.

Environment variables are read from the process and from a `.env` file at
the project root.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / '.env')

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-dev-only')
DEBUG = os.environ.get('DJANGO_DEBUG', '0').strip().lower() in {'1', 'true', 'yes', 'on'}
ALLOWED_HOSTS = [h.strip() for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if h.strip()]

INSTALLED_APPS = [
    'noai',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'noai.middleware.BlockAIBotsMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'config.urls'
WSGI_APPLICATION = 'config.wsgi.application'
ASGI_APPLICATION = 'config.asgi.application'

LANGUAGE_CODE = 'en-gb'
TIME_ZONE = 'UTC'
USE_I18N = False

# AI crawler redirect
NOAI_REDIRECT_URL = os.environ.get('NOAI_REDIRECT_URL', 'https://example.com/')
NOAI_REDIRECT_STATUS = os.environ.get('NOAI_REDIRECT_STATUS', '301')
NOAI_FORCE_REFETCHING = os.environ.get('NOAI_FORCE_REFETCHING', '0').strip().lower() in {'1', 'true', 'yes', 'on'}
NOAI_EXEMPT_PATHS = ('/robots.txt',)

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'noai': {
            'handlers': ['console'],
            'level': os.environ.get('NOAI_LOG_LEVEL', 'INFO'),
        },
    },
}
