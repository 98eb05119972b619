import secrets
from pathlib import Path
from urllib.parse import parse_qs, unquote, urlparse

from decouple import Csv, config

BASE_DIR = Path(__file__).resolve().parent.parent


def get_csv(name: str, default: str = "") -> list[str]:
    return [item for item in config(name, cast=Csv(), default=default) if item]


DEBUG = config("DJANGO_DEBUG", cast=bool, default=False)
SECRET_KEY = config("DJANGO_SECRET_KEY", default="")
if not SECRET_KEY:
    if DEBUG:
        SECRET_KEY = secrets.token_urlsafe(64)
    else:
        raise ValueError("DJANGO_SECRET_KEY must be configured when DJANGO_DEBUG is False.")
ALLOWED_HOSTS = get_csv("DJANGO_ALLOWED_HOSTS", default="localhost,127.0.0.1")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "corsheaders",
    "rest_framework",
    "hotspot",
]

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

ROOT_URLCONF = "project_settings.urls"

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

WSGI_APPLICATION = "project_settings.wsgi.application"


def get_database_config():
    # First try individual configs
    db_name = config("DB_NAME", default="")
    db_user = config("DB_USER", default="")
    db_password = config("DB_PASSWORD", default="")
    db_host = config("DB_HOST", default="")
    db_port = config("DB_PORT", default="")

    if db_name and db_user and db_password:
        return {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": db_name,
            "USER": db_user,
            "PASSWORD": db_password,
            "HOST": db_host,
            "PORT": db_port,
        }

    database_url = config("DATABASE_URL", default="")
    if not database_url:
        return {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }

    parsed = urlparse(database_url)
    scheme = parsed.scheme.lower()
    if scheme == "sqlite":
        if database_url.startswith("sqlite:////"):
            name = parsed.path
        elif parsed.path and parsed.path != "/":
            name = parsed.path[1:] if parsed.path.startswith("/") else parsed.path
        else:
            name = BASE_DIR / "db.sqlite3"
        return {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": name,
        }

    if scheme in {"postgres", "postgresql"}:
        database = {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": parsed.path.lstrip("/") or "",
            "USER": unquote(parsed.username or ""),
            "PASSWORD": unquote(parsed.password or ""),
            "HOST": parsed.hostname or "",
            "PORT": str(parsed.port or ""),
        }
        options = {key: values[-1] for key, values in parse_qs(parsed.query).items() if values}
        if options:
            database["OPTIONS"] = options
        return database

    raise ValueError(f"Unsupported DATABASE_URL scheme: {parsed.scheme}")


DATABASES = {"default": get_database_config()}

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

CORS_ALLOWED_ORIGINS = get_csv("CORS_ALLOWED_ORIGINS")
CORS_ALLOW_CREDENTIALS = config("CORS_ALLOW_CREDENTIALS", cast=bool, default=True)
if DEBUG and not CORS_ALLOWED_ORIGINS:
    CORS_ALLOW_ALL_ORIGINS = True

CSRF_TRUSTED_ORIGINS = get_csv("CSRF_TRUSTED_ORIGINS")

# The captive portal is anonymous: devices are identified by an opaque id, not a login.
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (),
    "DEFAULT_PERMISSION_CLASSES": ("rest_framework.permissions.AllowAny",),
    "UNAUTHENTICATED_USER": None,
    "DEFAULT_THROTTLE_CLASSES": (
        "rest_framework.throttling.AnonRateThrottle",
        "rest_framework.throttling.ScopedRateThrottle",
    ),
    "DEFAULT_THROTTLE_RATES": {
        "anon": config("DRF_THROTTLE_ANON", default="600/min"),
        "purchase": config("DRF_THROTTLE_PURCHASE", default="30/hour"),
        "device_status": config("DRF_THROTTLE_DEVICE_STATUS", default="240/min"),
        "device_issue": config("DRF_THROTTLE_DEVICE_ISSUE", default="60/hour"),
    },
}

# Plan catalog and charge methods.
HOTSPOT_CURRENCY = config("HOTSPOT_CURRENCY", default="UGX").strip().upper()
HOTSPOT_CHARGE_METHODS = get_csv("HOTSPOT_CHARGE_METHODS", default="mtn,airtel,visa,wallet")
HOTSPOT_MOBILE_MONEY_METHODS = get_csv("HOTSPOT_MOBILE_MONEY_METHODS", default="mtn,airtel")

# Charge gateway. Leave a provider URL empty to run that provider in simulated mode.
CHARGE_GATEWAY_TIMEOUT_SECONDS = config("CHARGE_GATEWAY_TIMEOUT_SECONDS", cast=int, default=30)
MTN_MOMO_API_URL = config("MTN_MOMO_API_URL", default="")
MTN_MOMO_API_KEY = config("MTN_MOMO_API_KEY", default="")
AIRTEL_MONEY_API_URL = config("AIRTEL_MONEY_API_URL", default="")
AIRTEL_MONEY_API_KEY = config("AIRTEL_MONEY_API_KEY", default="")
CARD_GATEWAY_API_URL = config("CARD_GATEWAY_API_URL", default="")
CARD_GATEWAY_API_KEY = config("CARD_GATEWAY_API_KEY", default="")

# Network actuator (router hook). Empty URL keeps the hook log-only.
NETWORK_ACTUATOR_URL = config("NETWORK_ACTUATOR_URL", default="")
NETWORK_ACTUATOR_TOKEN = config("NETWORK_ACTUATOR_TOKEN", default="")
NETWORK_ACTUATOR_TIMEOUT_SECONDS = config("NETWORK_ACTUATOR_TIMEOUT_SECONDS", cast=int, default=5)

# Expiry sweeper.
ENTITLEMENT_SWEEP_INTERVAL_SECONDS = config("ENTITLEMENT_SWEEP_INTERVAL_SECONDS", cast=int, default=60)
ENTITLEMENT_SWEEP_MAX_WORKERS = config("ENTITLEMENT_SWEEP_MAX_WORKERS", cast=int, default=4)
ENTITLEMENT_EXPIRY_WARNING_MINUTES = config("ENTITLEMENT_EXPIRY_WARNING_MINUTES", cast=int, default=120)

# Administrative endpoints require this shared secret in X-Hotspot-Admin-Secret.
HOTSPOT_ADMIN_API_SECRET = config("HOTSPOT_ADMIN_API_SECRET", default="")

# Production security defaults.
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SECURE_HSTS_SECONDS = config(
    "DJANGO_SECURE_HSTS_SECONDS",
    cast=int,
    default=0 if DEBUG else 31536000,
)
SECURE_HSTS_INCLUDE_SUBDOMAINS = config(
    "DJANGO_SECURE_HSTS_INCLUDE_SUBDOMAINS",
    cast=bool,
    default=not DEBUG,
)
SECURE_HSTS_PRELOAD = config(
    "DJANGO_SECURE_HSTS_PRELOAD",
    cast=bool,
    default=not DEBUG,
)
SECURE_SSL_REDIRECT = config(
    "DJANGO_SECURE_SSL_REDIRECT",
    cast=bool,
    default=not DEBUG,
)
SESSION_COOKIE_SECURE = config(
    "DJANGO_SESSION_COOKIE_SECURE",
    cast=bool,
    default=not DEBUG,
)
CSRF_COOKIE_SECURE = config(
    "DJANGO_CSRF_COOKIE_SECURE",
    cast=bool,
    default=not DEBUG,
)
SECURE_CONTENT_TYPE_NOSNIFF = True
SECURE_REFERRER_POLICY = config(
    "DJANGO_SECURE_REFERRER_POLICY",
    default="strict-origin-when-cross-origin",
)
X_FRAME_OPTIONS = config("DJANGO_X_FRAME_OPTIONS", default="DENY")

# Logging defaults prioritize clear operational visibility without exposing secrets.
DJANGO_LOG_LEVEL = config("DJANGO_LOG_LEVEL", default="DEBUG" if DEBUG else "INFO").upper()
HOTSPOT_LOG_LEVEL = config("HOTSPOT_LOG_LEVEL", default=DJANGO_LOG_LEVEL).upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
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
        "level": DJANGO_LOG_LEVEL,
    },
    "loggers": {
        "hotspot": {
            "handlers": ["console"],
            "level": HOTSPOT_LOG_LEVEL,
            "propagate": False,
        },
    },
}
