
from pathlib import Path
from datetime import timedelta
import os
BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(key, default="false"):
    return os.getenv(key, default).lower() in {"1", "true", "yes", "on"}


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-bk7#m2q!books-judgments-dev-only-key$w9x")


DEBUG = _env_bool("DJANGO_DEBUG", "true")

ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "").split(",") if h]



INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    'rest_framework',
    #apps
    'account',
    'catalog',
    'payment',
    'notifications',

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

ROOT_URLCONF = "core.urls"

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

WSGI_APPLICATION = "core.wsgi.application"



DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.getenv("DJANGO_DB_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}


AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]



LANGUAGE_CODE = "en-us"

TIME_ZONE = "UTC"

USE_I18N = True

USE_TZ = True



STATIC_URL = "static/"


DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

AUTH_USER_MODEL = "account.User"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
}



SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=60),   # 1 hour
    "REFRESH_TOKEN_LIFETIME": timedelta(days=30),     # 30 days

    "ROTATE_REFRESH_TOKENS": True,
    "BLACKLIST_AFTER_ROTATION": True,
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.getenv("DJANGO_LOG_LEVEL", "INFO"),
    },
    "loggers": {
        "apscheduler": {"level": "WARNING"},
    },
}

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Outbound gateway calls
PAYMENT_GATEWAY_TIMEOUT = int(os.getenv("PAYMENT_GATEWAY_TIMEOUT", "30"))

# JazzCash (sandbox by default for local development)
JAZZCASH_SANDBOX = _env_bool("JAZZCASH_SANDBOX", "true")
JAZZCASH_MERCHANT_ID = os.getenv("JAZZCASH_MERCHANT_ID", "")
JAZZCASH_PASSWORD = os.getenv("JAZZCASH_PASSWORD", "")
JAZZCASH_INTEGRITY_SALT = os.getenv("JAZZCASH_INTEGRITY_SALT", "")
JAZZCASH_RETURN_URL = os.getenv("JAZZCASH_RETURN_URL", "http://localhost:8000/payment/jazzcash/return/")

# Safepay
SAFEPAY_SANDBOX = _env_bool("SAFEPAY_SANDBOX", "true")
SAFEPAY_API_KEY = os.getenv("SAFEPAY_API_KEY", "")
SAFEPAY_SECRET_KEY = os.getenv("SAFEPAY_SECRET_KEY", "")
SAFEPAY_WEBHOOK_SECRET = os.getenv("SAFEPAY_WEBHOOK_SECRET", "")
SAFEPAY_SUCCESS_URL = os.getenv("SAFEPAY_SUCCESS_URL", "http://localhost:8000/payment/safepay/return/")
SAFEPAY_CANCEL_URL = os.getenv("SAFEPAY_CANCEL_URL", "http://localhost:5173/payment/cancel")

# Disbursement APIs for non-JazzCash payout methods
EASYPAISA_PAYOUT_URL = os.getenv("EASYPAISA_PAYOUT_URL", "")
EASYPAISA_PAYOUT_API_KEY = os.getenv("EASYPAISA_PAYOUT_API_KEY", "")
BANK_PAYOUT_URL = os.getenv("BANK_PAYOUT_URL", "")
BANK_PAYOUT_API_KEY = os.getenv("BANK_PAYOUT_API_KEY", "")

# Commission and payouts
PLATFORM_COMMISSION_PERCENTAGE = os.getenv("PLATFORM_COMMISSION_PERCENTAGE", "10")
PLATFORM_ACCOUNT_EMAIL = os.getenv("PLATFORM_ACCOUNT_EMAIL", "")
MINIMUM_PAYOUT_AMOUNT = os.getenv("MINIMUM_PAYOUT_AMOUNT", "1000")
PAYOUT_COMMISSION_BATCH_LIMIT = int(os.getenv("PAYOUT_COMMISSION_BATCH_LIMIT", "100"))
PAYOUT_SCHEDULES = {
    "daily": os.getenv("PAYOUT_CRON_DAILY", "0 2 * * *"),
    "weekly": os.getenv("PAYOUT_CRON_WEEKLY", "0 3 * * 1"),
    "monthly": os.getenv("PAYOUT_CRON_MONTHLY", "0 4 1 * *"),
}

# Notification email (console backend unless SMTP is configured)
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend")
EMAIL_HOST = os.getenv("EMAIL_HOST", "localhost")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_HOST_USER = os.getenv("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = os.getenv("EMAIL_HOST_PASSWORD", "")
EMAIL_USE_TLS = _env_bool("EMAIL_USE_TLS", "true")
EMAIL_TIMEOUT = int(os.getenv("EMAIL_TIMEOUT", "30"))
DEFAULT_FROM_EMAIL = os.getenv("EMAIL_FROM", "no-reply@books.pk")
NOTIFICATION_EMAILS_ENABLED = _env_bool("NOTIFICATION_EMAILS_ENABLED", "true")
