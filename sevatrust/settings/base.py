from dotenv import load_dotenv
load_dotenv()

import os
from decimal import Decimal
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-change-me")
DEBUG = _env_flag("DJANGO_DEBUG", False)
ALLOWED_HOSTS = [h.strip() for h in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "accounts",
    "collectors",
    "donations.apps.DonationsConfig",
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

ROOT_URLCONF = "sevatrust.urls"
WSGI_APPLICATION = "sevatrust.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

if os.getenv("DB_NAME"):
    DATABASES = {
        "default": {
            "ENGINE": os.getenv("DB_ENGINE", "django.db.backends.postgresql"),
            "NAME": os.getenv("DB_NAME"),
            "USER": os.getenv("DB_USER", ""),
            "PASSWORD": os.getenv("DB_PASSWORD", ""),
            "HOST": os.getenv("DB_HOST", "localhost"),
            "PORT": os.getenv("DB_PORT", ""),
            "CONN_MAX_AGE": int(os.getenv("DB_CONN_MAX_AGE", "60")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

# rate-limit counters are shared across workers through Redis when configured
REDIS_URL = os.getenv("REDIS_URL")
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
        }
    }

AUTH_USER_MODEL = "accounts.User"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("TIME_ZONE", "Asia/Kolkata")
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# --- email ---
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.smtp.EmailBackend")
EMAIL_HOST = os.getenv("EMAIL_HOST", "localhost")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_HOST_USER = os.getenv("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = os.getenv("EMAIL_HOST_PASSWORD", "")
EMAIL_USE_TLS = _env_flag("EMAIL_USE_TLS", True)
EMAIL_TIMEOUT = int(os.getenv("EMAIL_TIMEOUT", "20"))
DEFAULT_FROM_EMAIL = os.getenv("DEFAULT_FROM_EMAIL", "noreply@sevatrust.org")
DONATIONS_FROM_EMAIL = os.getenv("DONATIONS_FROM_EMAIL", DEFAULT_FROM_EMAIL)
EMAIL_FAIL_SILENTLY = _env_flag("EMAIL_FAIL_SILENTLY", False)

# --- auth ---
JWT_SECRET = os.getenv("JWT_SECRET", SECRET_KEY)
JWT_TTL_SECONDS = int(os.getenv("JWT_TTL_SECONDS", str(7 * 24 * 3600)))

# --- payment gateway ---
RAZORPAY_BASE_URL = os.getenv("RAZORPAY_BASE_URL", "https://api.razorpay.com")
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")
RAZORPAY_WEBHOOK_SECRET = os.getenv("RAZORPAY_WEBHOOK_SECRET", "")
RAZORPAY_TIMEOUT = float(os.getenv("RAZORPAY_TIMEOUT", "15"))

# --- messaging (OTP delivery) ---
WA_BASE_URL = os.getenv("WA_BASE_URL", "https://api.waapihub.com")
WA_API_KEY = os.getenv("WA_API_KEY", "")
WA_TIMEOUT = float(os.getenv("WA_TIMEOUT", "10"))

# --- donations ---
DONATION_MIN_AMOUNT = Decimal(os.getenv("DONATION_MIN_AMOUNT", "1"))
DONATION_MAX_AMOUNT = Decimal(os.getenv("DONATION_MAX_AMOUNT", "10000000"))
RECEIPTS_DIR = Path(os.getenv("RECEIPTS_DIR", str(BASE_DIR / "receipts")))
RECEIPT_PREFIX = os.getenv("RECEIPT_PREFIX", "GRD")
TRUST_NAME = os.getenv("TRUST_NAME", "Seva Trust")
TRUST_ADDRESS = os.getenv("TRUST_ADDRESS", "")
TRUST_PAN = os.getenv("TRUST_PAN", "")

# --- OTP ---
OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "300"))
OTP_IP_RATE_LIMIT = int(os.getenv("OTP_IP_RATE_LIMIT", "5"))
OTP_MOBILE_RATE_LIMIT = int(os.getenv("OTP_MOBILE_RATE_LIMIT", "3"))
OTP_RATE_WINDOW_SECONDS = int(os.getenv("OTP_RATE_WINDOW_SECONDS", "300"))
DONATION_CREATE_RATE_LIMIT = int(os.getenv("DONATION_CREATE_RATE_LIMIT", "10"))
PUBLIC_API_RATE_LIMIT = int(os.getenv("PUBLIC_API_RATE_LIMIT", "30"))
# number of reverse proxies in front of the app that append to X-Forwarded-For
TRUSTED_PROXY_COUNT = int(os.getenv("TRUSTED_PROXY_COUNT", "0"))

# --- cleanup ---
CLEANUP_SCHEDULER_AUTOSTART = _env_flag("CLEANUP_SCHEDULER_AUTOSTART", False)
CLEANUP_INTERVAL_HOURS = float(os.getenv("CLEANUP_INTERVAL_HOURS", "6"))
CLEANUP_INITIAL_DELAY_SECONDS = float(os.getenv("CLEANUP_INITIAL_DELAY_SECONDS", "10"))
CLEANUP_PENDING_MAX_AGE_HOURS = float(os.getenv("CLEANUP_PENDING_MAX_AGE_HOURS", "24"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "django.request": {"handlers": ["console"], "level": "ERROR", "propagate": False},
        "accounts": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "collectors": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "donations": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "payments": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}
