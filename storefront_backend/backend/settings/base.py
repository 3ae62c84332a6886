"""
PATH: backend/settings/base.py

BASE SETTINGS (shared by dev + prod)

Covers:
- Env-driven config (django-environ)
- REST framework auth / throttling / schema
- Payment gateway (MercadoPago) platform credentials + mode
- Order engine knobs (gateway-routed methods, conflict retries, payment coupling)
- Webhook dedup store selection (process memory vs shared cache)
- Logging
- Sentry (optional)
"""

from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path

import environ
from corsheaders.defaults import default_headers, default_methods

# -----------------------------------------
# BASE DIRECTORY
# -----------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# -----------------------------------------
# TEST MODE DETECTION
# -----------------------------------------
TESTING = "test" in sys.argv or "pytest" in sys.modules

# -----------------------------------------
# ENV (django-environ)
# -----------------------------------------
env = environ.Env(
    DEBUG=(bool, True),
    SECRET_KEY=(str, ""),
    TIME_ZONE=(str, "UTC"),
    LOG_LEVEL=(str, "INFO"),
    ALLOWED_HOSTS=(list, ["localhost", "127.0.0.1", "testserver"]),
    CORS_ALLOWED_ORIGINS=(list, ["http://localhost:3000"]),
    CSRF_TRUSTED_ORIGINS=(list, ["http://localhost:3000"]),
    ADMIN_PATH=(str, "admin/"),
    DATABASE_URL=(str, f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
    REDIS_URL=(str, ""),
    # MercadoPago (platform defaults; stores may override credentials)
    MERCADOPAGO_ACCESS_TOKEN=(str, ""),
    MERCADOPAGO_PUBLIC_KEY=(str, ""),
    MERCADOPAGO_WEBHOOK_SECRET=(str, ""),
    MERCADOPAGO_MODE=(str, "test"),
    MERCADOPAGO_FETCH_TIMEOUT_SECONDS=(float, 5.0),
    MERCADOPAGO_REQUEST_TIMEOUT_SECONDS=(float, 25.0),
    FRONTEND_URL=(str, "http://localhost:3000"),
    BACKEND_URL=(str, "http://localhost:8000"),
    DEFAULT_CURRENCY=(str, "ARS"),
    # Webhook dedup
    WEBHOOK_SEEN_STORE=(str, "memory"),
    WEBHOOK_DEDUP_TTL_SECONDS=(int, 3600),
    # Orders
    ORDERS_AUTO_PROCESS_ON_PAYMENT=(bool, False),
    ORDERS_CONFLICT_RETRIES=(int, 3),
    # Notifications
    DEFAULT_FROM_EMAIL=(str, "orders@storefront.local"),
    EMAIL_BACKEND=(str, "django.core.mail.backends.console.EmailBackend"),
    # Throttling (tests run many anonymous requests back to back)
    THROTTLE_ANON_RATE=(str, "10000/min" if TESTING else "60/min"),
    THROTTLE_USER_RATE=(str, "10000/min" if TESTING else "600/min"),
    THROTTLE_CHECKOUT_RATE=(str, "10000/min" if TESTING else "20/min"),
    THROTTLE_WEBHOOK_RATE=(str, "10000/min" if TESTING else "600/min"),
    # Sentry (optional; enable by setting SENTRY_DSN)
    SENTRY_DSN=(str, ""),
    SENTRY_ENVIRONMENT=(str, "development"),
    SENTRY_TRACES_SAMPLE_RATE=(float, 0.0),
)

# -----------------------------------------
# LOAD .env
# -----------------------------------------
env_file_1 = BASE_DIR / ".env"
env_file_2 = BASE_DIR.parent / ".env"

if env_file_1.exists():
    env.read_env(str(env_file_1))
elif env_file_2.exists():
    env.read_env(str(env_file_2))

# -----------------------------------------
# CORE SECURITY
# -----------------------------------------
SECRET_KEY = (env("SECRET_KEY") or "dev-insecure-change-me").strip()
DEBUG = env.bool("DEBUG")
ALLOWED_HOSTS = env.list("ALLOWED_HOSTS")
ADMIN_PATH = (env("ADMIN_PATH") or "admin/").strip()

# -----------------------------------------
# I18N / TZ
# -----------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = (env("TIME_ZONE") or "UTC").strip()
USE_I18N = True
USE_TZ = True

# -----------------------------------------
# AUTH USER MODEL (custom)
# -----------------------------------------
AUTH_USER_MODEL = "users.User"

# -----------------------------------------
# INSTALLED APPS
# -----------------------------------------
INSTALLED_APPS = [
    "corsheaders",
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "rest_framework_simplejwt",
    "drf_spectacular",
    "django_filters",
    "users",
    "tenants.apps.TenantsConfig",
    "catalog.apps.CatalogConfig",
    "carts",
    "orders.apps.OrdersConfig",
    "payments.apps.PaymentsConfig",
]

# -----------------------------------------
# MIDDLEWARE
# -----------------------------------------
MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "backend.urls"
WSGI_APPLICATION = "backend.wsgi.application"
APPEND_SLASH = True

# -----------------------------------------
# TEMPLATES (required for Django admin)
# -----------------------------------------
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [str(BASE_DIR / "templates")],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    }
]

# -----------------------------------------
# REST FRAMEWORK
# -----------------------------------------
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": ("rest_framework.permissions.IsAuthenticated",),
    "DEFAULT_FILTER_BACKENDS": ("django_filters.rest_framework.DjangoFilterBackend",),
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 10,
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_THROTTLE_CLASSES": (
        "rest_framework.throttling.AnonRateThrottle",
        "rest_framework.throttling.UserRateThrottle",
    ),
    "DEFAULT_THROTTLE_RATES": {
        "anon": env("THROTTLE_ANON_RATE"),
        "user": env("THROTTLE_USER_RATE"),
        "checkout": env("THROTTLE_CHECKOUT_RATE"),
        "webhook": env("THROTTLE_WEBHOOK_RATE"),
    },
}

# -----------------------------------------
# SIMPLE JWT
# -----------------------------------------
SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=30),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=1),
}

# -----------------------------------------
# DATABASE
# -----------------------------------------
DATABASES = {
    "default": env.db("DATABASE_URL"),
}

# -----------------------------------------
# CACHE
# -----------------------------------------
# The webhook Seen store ("cache" mode) lives here. A shared backend (Redis)
# is required when more than one instance serves webhooks.
REDIS_URL = (env("REDIS_URL") or "").strip()
if REDIS_URL:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": REDIS_URL,
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "storefront-default",
        }
    }

# -----------------------------------------
# EMAIL (order notifications)
# -----------------------------------------
EMAIL_BACKEND = env("EMAIL_BACKEND")
DEFAULT_FROM_EMAIL = env("DEFAULT_FROM_EMAIL")

# -----------------------------------------
# PAYMENTS
# -----------------------------------------
PAYMENTS = {
    "GATEWAY_CLASS": "payments.services.mercadopago.MercadoPagoGateway",
    "MERCADOPAGO": {
        "ACCESS_TOKEN": (env("MERCADOPAGO_ACCESS_TOKEN") or "").strip(),
        "PUBLIC_KEY": (env("MERCADOPAGO_PUBLIC_KEY") or "").strip(),
        "WEBHOOK_SECRET": (env("MERCADOPAGO_WEBHOOK_SECRET") or "").strip(),
        "MODE": (env("MERCADOPAGO_MODE") or "test").strip().lower(),
        "FETCH_TIMEOUT_SECONDS": env.float("MERCADOPAGO_FETCH_TIMEOUT_SECONDS"),
        "REQUEST_TIMEOUT_SECONDS": env.float("MERCADOPAGO_REQUEST_TIMEOUT_SECONDS"),
        "FRONTEND_URL": (env("FRONTEND_URL") or "").strip().rstrip("/"),
        "NOTIFICATION_URL": f"{(env('BACKEND_URL') or '').strip().rstrip('/')}/api/payments/webhook/",
        "INTENT_EXPIRY_DAYS": 30,
        "MAX_INSTALLMENTS": 12,
        "CURRENCY": (env("DEFAULT_CURRENCY") or "ARS").strip().upper(),
    },
}

WEBHOOK_SEEN_STORE = (env("WEBHOOK_SEEN_STORE") or "memory").strip().lower()
WEBHOOK_DEDUP_TTL_SECONDS = env.int("WEBHOOK_DEDUP_TTL_SECONDS")

# -----------------------------------------
# ORDERS
# -----------------------------------------
ORDERS = {
    "GATEWAY_PAYMENT_METHODS": {"mercadopago"},
    "CONFLICT_RETRIES": env.int("ORDERS_CONFLICT_RETRIES"),
    "AUTO_PROCESS_ON_PAYMENT": env.bool("ORDERS_AUTO_PROCESS_ON_PAYMENT"),
}

# -----------------------------------------
# LOGGING
# -----------------------------------------
LOG_LEVEL = (env("LOG_LEVEL") or "INFO").strip().upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "storefront": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "storefront",
        },
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "catalog": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "orders": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "payments": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}

if TESTING:
    LOGGING["loggers"] = {
        name: {**cfg, "level": "CRITICAL"} for name, cfg in LOGGING["loggers"].items()
    }

# -----------------------------------------
# SENTRY (optional)
# -----------------------------------------
SENTRY_DSN = (env("SENTRY_DSN") or "").strip()
SENTRY_ENVIRONMENT = (env("SENTRY_ENVIRONMENT") or "development").strip()
SENTRY_TRACES_SAMPLE_RATE = float(env("SENTRY_TRACES_SAMPLE_RATE"))

if SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.django import DjangoIntegration

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENVIRONMENT,
        integrations=[DjangoIntegration()],
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,
    )

# -----------------------------------------
# CORS / CSRF
# -----------------------------------------
CORS_ALLOWED_ORIGINS = env.list("CORS_ALLOWED_ORIGINS")
CORS_ALLOW_CREDENTIALS = True
CORS_ALLOW_METHODS = list(default_methods)
CORS_ALLOW_HEADERS = list(default_headers)

CSRF_TRUSTED_ORIGINS = env.list("CSRF_TRUSTED_ORIGINS")

# -----------------------------------------
# STATIC FILES
# -----------------------------------------
STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------
# SWAGGER
# -----------------------------------------
SPECTACULAR_SETTINGS = {
    "TITLE": "Storefront Backend API",
    "DESCRIPTION": "Multi-store orders, stock reservation and payment reconciliation API",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}
