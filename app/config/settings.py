"""
Django settings for the application.

This is the single settings file for all environments. Configuration is driven
by environment variables using django-environ, following the 12-factor app
methodology.

Environment files:
    - .env.development: Development settings (DEBUG=True, unsigned callbacks allowed)
    - .env.production: Production settings (DEBUG=False, DEPLOYMENT_ENV=production)

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/topics/settings/
"""

import os
from datetime import timedelta
from pathlib import Path

import environ

# =============================================================================
# Path Configuration
# =============================================================================
BASE_DIR = Path(__file__).resolve().parent.parent

# =============================================================================
# Environment Configuration
# =============================================================================
env = environ.Env(
    DEBUG=(bool, False),
    ALLOWED_HOSTS=(list, ["localhost", "127.0.0.1"]),
    LOG_LEVEL=(str, "INFO"),
    DEPLOYMENT_ENV=(str, "development"),
)

# In Docker, env vars are passed directly; .env files are for local dev
env_file = os.environ.get("ENV_FILE", BASE_DIR.parent / ".env.development")
if Path(env_file).exists():
    environ.Env.read_env(env_file)

# =============================================================================
# Core Settings
# =============================================================================
# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = env("SECRET_KEY", default="django-insecure-local-development-key")

DEBUG = env("DEBUG")

ALLOWED_HOSTS = env("ALLOWED_HOSTS")

# development | staging | production
# Development-only switches (unsigned callbacks) are ignored in production.
DEPLOYMENT_ENV = env("DEPLOYMENT_ENV")
IS_PRODUCTION = DEPLOYMENT_ENV == "production"

# =============================================================================
# Application Definition
# =============================================================================
INSTALLED_APPS = [
    # Django core apps
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party apps
    "rest_framework",
    "rest_framework_simplejwt",
    "drf_spectacular",
    # Local apps
    "core",
    "authentication",
    "payments",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

# =============================================================================
# Database Configuration
# =============================================================================
# PostgreSQL (psycopg3) in deployment, e.g.
#   DATABASE_URL=postgres://postgres:postgres@db:5432/app_dev
# SQLite when unset, for local runs and the test suite.
DATABASES = {
    "default": env.db(
        "DATABASE_URL",
        default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}",
    ),
}

if DATABASES["default"]["ENGINE"] == "django.db.backends.postgresql":
    DATABASES["default"]["OPTIONS"] = {
        "connect_timeout": 10,
    }

# =============================================================================
# Authentication Configuration
# =============================================================================
# Custom user model (MUST be set before first migration)
AUTH_USER_MODEL = "authentication.User"

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"
    },
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# =============================================================================
# Django REST Framework Configuration
# =============================================================================
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        # JWT authentication (primary for API clients)
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        # Session authentication (for browsable API and admin)
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

if DEBUG:
    REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"].append(
        "rest_framework.renderers.BrowsableAPIRenderer"
    )

# =============================================================================
# drf-spectacular (OpenAPI) Configuration
# =============================================================================
SPECTACULAR_SETTINGS = {
    "TITLE": "Payments API",
    "DESCRIPTION": "Subscription payments over the card-checkout and invoice/QR gateways",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
    "SCHEMA_PATH_PREFIX": r"/api/v[0-9]+",
    "SECURITY": [{"Bearer": []}],
    "APPEND_COMPONENTS": {
        "securitySchemes": {
            "Bearer": {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
            }
        }
    },
    "COMPONENT_SPLIT_REQUEST": True,
    "SORT_OPERATIONS": False,
}

# =============================================================================
# Simple JWT Configuration
# =============================================================================
SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=60),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=7),
    "UPDATE_LAST_LOGIN": True,
    "ALGORITHM": "HS256",
    "SIGNING_KEY": SECRET_KEY,
    "AUTH_HEADER_TYPES": ("Bearer",),
    "AUTH_HEADER_NAME": "HTTP_AUTHORIZATION",
    "USER_ID_FIELD": "id",
    "USER_ID_CLAIM": "user_id",
}

# =============================================================================
# Celery Configuration
# =============================================================================
CELERY_BROKER_URL = env("CELERY_BROKER_URL", default="redis://redis:6379/1")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", default="redis://redis:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = "UTC"
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 10 * 60  # 10 minutes

# Periodic jobs (run by `celery -A config beat`)
CELERY_BEAT_SCHEDULE = {
    "reconcile-pending-transactions": {
        "task": "payments.tasks.reconcile_pending_transactions",
        "schedule": timedelta(minutes=10),
    },
    "expire-card-binding-sessions": {
        "task": "payments.tasks.expire_card_binding_sessions",
        "schedule": timedelta(minutes=5),
    },
    "expire-lapsed-subscriptions": {
        "task": "payments.tasks.expire_lapsed_subscriptions",
        "schedule": timedelta(hours=1),
    },
    "cleanup-old-webhook-events": {
        "task": "payments.tasks.cleanup_old_webhook_events",
        "schedule": timedelta(days=1),
    },
}

# =============================================================================
# Payment Gateway Configuration
# =============================================================================
# Public URLs used to build callback and return URLs sent to the gateways
API_BASE_URL = env("API_BASE_URL", default="http://localhost:8000")
FRONTEND_URL = env("FRONTEND_URL", default="http://localhost:3000")

# Outbound call timeout in seconds. There is no retry other than the single
# retry after a token refresh on 401/403.
PAYMENT_GATEWAY_TIMEOUT_SECONDS = env.int("PAYMENT_GATEWAY_TIMEOUT_SECONDS", default=10)

# Cached bearer tokens are treated as expired this many seconds early
PAYMENT_TOKEN_REFRESH_MARGIN_SECONDS = env.int(
    "PAYMENT_TOKEN_REFRESH_MARGIN_SECONDS", default=3600
)

# Pending transactions older than this are polled by the reconciliation job
PAYMENT_RECONCILE_AFTER_MINUTES = env.int("PAYMENT_RECONCILE_AFTER_MINUTES", default=15)

# Card binding forms not completed within this window are failed
CARD_BINDING_SESSION_TTL_MINUTES = env.int("CARD_BINDING_SESSION_TTL_MINUTES", default=30)

# Per-gateway settings, keyed by gateway name (see payments.gateways.registry)
#   SIGNATURE_SCHEMES: callback digests accepted for this gateway ("md5", "sha1")
#   ALLOW_UNSIGNED_CALLBACKS: development-only bypass, ignored when IS_PRODUCTION
#   ACK_UNKNOWN_INVOICES: answer 200 for callbacks about unknown invoices
PAYMENT_GATEWAYS = {
    "card_checkout": {
        "BASE_URL": env("CARD_CHECKOUT_BASE_URL", default="https://sandbox.card-checkout.example"),
        "APPLICATION_ID": env("CARD_CHECKOUT_APPLICATION_ID", default=""),
        "SECRET": env("CARD_CHECKOUT_SECRET", default=""),
        "STORE_ID": env("CARD_CHECKOUT_STORE_ID", default=""),
        "CALLBACK_SECRET": env("CARD_CHECKOUT_CALLBACK_SECRET", default=""),
        "SIGNATURE_SCHEMES": env.list(
            "CARD_CHECKOUT_SIGNATURE_SCHEMES", default=["md5", "sha1"]
        ),
        "ALLOW_UNSIGNED_CALLBACKS": env.bool(
            "CARD_CHECKOUT_ALLOW_UNSIGNED_CALLBACKS", default=False
        ),
        "ACK_UNKNOWN_INVOICES": env.bool("CARD_CHECKOUT_ACK_UNKNOWN_INVOICES", default=True),
        # Token expiry is reported as local wall-clock time (GMT+5)
        "TOKEN_EXPIRY_TZ_OFFSET_HOURS": env.int(
            "CARD_CHECKOUT_TOKEN_EXPIRY_TZ_OFFSET_HOURS", default=5
        ),
    },
    "invoice_qr": {
        "BASE_URL": env("INVOICE_QR_BASE_URL", default="https://sandbox.invoice-qr.example"),
        "CLIENT_ID": env("INVOICE_QR_CLIENT_ID", default=""),
        "SECRET": env("INVOICE_QR_SECRET", default=""),
        "STORE_ID": env("INVOICE_QR_STORE_ID", default=""),
        "CALLBACK_SECRET": env("INVOICE_QR_CALLBACK_SECRET", default=""),
        "SIGNATURE_SCHEMES": env.list("INVOICE_QR_SIGNATURE_SCHEMES", default=["sha1"]),
        "ALLOW_UNSIGNED_CALLBACKS": env.bool(
            "INVOICE_QR_ALLOW_UNSIGNED_CALLBACKS", default=False
        ),
        "ACK_UNKNOWN_INVOICES": env.bool("INVOICE_QR_ACK_UNKNOWN_INVOICES", default=False),
    },
}

# =============================================================================
# Subscription Catalog
# =============================================================================
# Billing tier (months) -> entitlement length in days
SUBSCRIPTION_TIER_DAYS = {1: 30, 3: 90, 6: 180}

# plan -> tier months -> price in minor units (1/100 UZS)
SUBSCRIPTION_PRICES = {
    "start": {1: 25_000_000, 3: 67_500_000, 6: 120_000_000},
    "pro": {1: 45_500_000, 3: 122_850_000, 6: 218_400_000},
    "premium": {1: 75_000_000, 3: 202_500_000, 6: 360_000_000},
}

# =============================================================================
# Internationalization
# =============================================================================
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# =============================================================================
# Static Files
# =============================================================================
STATIC_URL = env("STATIC_URL", default="/static/")
STATIC_ROOT = BASE_DIR / "staticfiles"

# =============================================================================
# Default Primary Key Field Type
# =============================================================================
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL = env("LOG_LEVEL")

# Log file name determined by service (web, celery-worker, celery-beat)
LOG_FILE_NAME = env("LOG_FILE_NAME", default="django.log")
LOG_DIR = BASE_DIR / "logs"

LOG_DIR.mkdir(parents=True, exist_ok=True)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "file": {
            "format": "[{asctime}] {levelname} {name} {module}:{lineno} - {message}",
            "style": "{",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
        "file": {
            # Max 10MB per file, keeps 5 backups
            "level": "DEBUG",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": LOG_DIR / LOG_FILE_NAME,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "file",
            "encoding": "utf-8",
        },
        "security_file": {
            "level": "INFO",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": LOG_DIR / "security.log",
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 10,
            "formatter": "file",
            "encoding": "utf-8",
        },
    },
    "root": {
        "handlers": ["console", "file"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {
            "handlers": ["console", "file"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "django.request": {
            "handlers": ["console", "file"],
            "level": "ERROR",
            "propagate": False,
        },
        "celery": {
            "handlers": ["console", "file"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        # Signature failures, unsigned-callback bypasses, amount mismatches
        "payments.security": {
            "handlers": ["console", "security_file"],
            "level": "INFO",
            "propagate": False,
        },
    },
}

# =============================================================================
# Security Settings (Production Only)
# =============================================================================
if not DEBUG:
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
    SECURE_SSL_REDIRECT = env.bool("SECURE_SSL_REDIRECT", default=IS_PRODUCTION)
    SESSION_COOKIE_SECURE = env.bool("SESSION_COOKIE_SECURE", default=IS_PRODUCTION)
    CSRF_COOKIE_SECURE = env.bool("CSRF_COOKIE_SECURE", default=IS_PRODUCTION)
    SECURE_HSTS_SECONDS = env.int("SECURE_HSTS_SECONDS", default=0)
    SECURE_CONTENT_TYPE_NOSNIFF = True
    X_FRAME_OPTIONS = "DENY"
