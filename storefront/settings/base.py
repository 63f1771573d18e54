from pathlib import Path
import os

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent.parent

load_dotenv(BASE_DIR / ".env")


def _flag(name, default="false"):
    return os.getenv(name, default).lower() in ("1", "true", "yes")


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "")
DEBUG = _flag("DEBUG")

ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "orders",
    "qnbpay",
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

ROOT_URLCONF = "storefront.urls"

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

WSGI_APPLICATION = "storefront.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.getenv("DATABASE_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

# Gateway token cache lives here; point it at Redis/Memcached in production so
# every worker shares one token.
CACHES = {
    "default": {
        "BACKEND": os.getenv("CACHE_BACKEND", "django.core.cache.backends.locmem.LocMemCache"),
        "LOCATION": os.getenv("CACHE_LOCATION", "storefront"),
    }
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("TIME_ZONE", "Europe/Istanbul")
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ---------- QNBPay ----------
QNBPAY = {
    "MERCHANT_KEY": os.getenv("QNBPAY_MERCHANT_KEY", ""),
    "MERCHANT_ID": os.getenv("QNBPAY_MERCHANT_ID", ""),
    "APP_KEY": os.getenv("QNBPAY_APP_KEY", ""),
    "APP_SECRET": os.getenv("QNBPAY_APP_SECRET", ""),
    "TEST_MODE": _flag("QNBPAY_TEST_MODE", "true"),
    "ENABLE_3D": _flag("QNBPAY_ENABLE_3D", "true"),
    "INSTALLMENT": _flag("QNBPAY_INSTALLMENT", "true"),
    "INSTALLMENT_LIMIT": os.getenv("QNBPAY_INSTALLMENT_LIMIT", "12"),
    "LIMIT_BY_PRODUCT": _flag("QNBPAY_LIMIT_BY_PRODUCT"),
    "LIMIT_BY_CART": _flag("QNBPAY_LIMIT_BY_CART"),
    "CART_THRESHOLD": os.getenv("QNBPAY_CART_THRESHOLD", "0"),
    "ORDER_PREFIX": os.getenv("QNBPAY_ORDER_PREFIX", "QNBPAY"),
    "SUCCESS_STATUS": os.getenv("QNBPAY_SUCCESS_STATUS", "paid"),
    "SALE_WEB_HOOK_KEY": os.getenv("QNBPAY_SALE_WEB_HOOK_KEY", ""),
    "DEBUG": _flag("QNBPAY_DEBUG"),
}
QNBPAY_DEBUG_DIR = os.getenv("QNBPAY_DEBUG_DIR", str(BASE_DIR / "var" / "qnbpay"))

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "verbose"},
    },
    "loggers": {
        "django": {"handlers": ["console"], "level": "INFO"},
        "qnbpay": {
            "handlers": ["console"],
            "level": os.getenv("QNBPAY_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
        "orders": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}
