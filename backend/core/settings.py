import os
from pathlib import Path
import environ
from celery.schedules import crontab

BASE_DIR = Path(__file__).resolve().parent.parent
env = environ.Env(
    DJANGO_DEBUG=(bool, True),
    DJANGO_SECRET_KEY=(str, "insecure-key"),
    DJANGO_ALLOWED_HOSTS=(list, ["localhost", "127.0.0.1"]),
    TIME_ZONE=(str, "America/New_York"),
    CSRF_TRUSTED_ORIGINS=(list, []),
    SESSION_COOKIE_SECURE=(bool, False),
    CSRF_COOKIE_SECURE=(bool, False),

    POSTGRES_DB=(str, "company_ops"),
    POSTGRES_USER=(str, "company_ops"),
    POSTGRES_PASSWORD=(str, "company_ops"),
    POSTGRES_HOST=(str, "db"),
    POSTGRES_PORT=(int, 5432),

    REDIS_URL=(str, "redis://redis:6379/0"),
    CQ_REMINDER_HOUR=(int, 16),
    CQ_SHIFT1_START=(str, "20:00"),
    CQ_SHIFT1_END=(str, "01:00"),
    CQ_SHIFT2_START=(str, "01:00"),
    CQ_SHIFT2_END=(str, "06:00"),
    LIBERTY_DEADLINE_DAY=(int, 2),
    LIBERTY_DEADLINE_TIME=(str, "23:59"),

    EMAIL_BACKEND=(str, "django.core.mail.backends.console.EmailBackend"),
    EMAIL_HOST=(str, ""),
    EMAIL_PORT=(int, 587),
    EMAIL_HOST_USER=(str, ""),
    EMAIL_HOST_PASSWORD=(str, ""),
    EMAIL_USE_TLS=(bool, True),
    DEFAULT_FROM_EMAIL=(str, "noreply@example.com"),

    PUSH_BACKEND=(str, "companyops.services.push.ConsolePushBackend"),
    FCM_CREDENTIALS_FILE=(str, ""),
    PUSH_APP_LINK=(str, "/"),

    WEATHER_API_URL=(str, "https://api.weatherapi.com/v1"),
    WEATHER_API_KEY=(str, ""),
    WEATHER_API_TIMEOUT=(int, 10),
)
environ.Env.read_env(os.path.join(BASE_DIR.parent, ".env"))

SECRET_KEY = env("DJANGO_SECRET_KEY")
DEBUG = env("DJANGO_DEBUG")
ALLOWED_HOSTS = env("DJANGO_ALLOWED_HOSTS")

CSRF_TRUSTED_ORIGINS = env("CSRF_TRUSTED_ORIGINS")
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')
USE_X_FORWARDED_HOST = True
SESSION_COOKIE_SECURE = env("SESSION_COOKIE_SECURE")
CSRF_COOKIE_SECURE = env("CSRF_COOKIE_SECURE")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "django_filters",
    "companyops",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "core.middleware.ErrorLoggingMiddleware",  # request id, redacted crash/5xx logs
    "core.middleware.CurrentUserMiddleware",  # acting user and client ip for audit rows
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
        "ENGINE": "django.db.backends.postgresql",
        "NAME": env("POSTGRES_DB"),
        "USER": env("POSTGRES_USER"),
        "PASSWORD": env("POSTGRES_PASSWORD"),
        "HOST": env("POSTGRES_HOST"),
        "PORT": env("POSTGRES_PORT"),
    }
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = env("TIME_ZONE")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "static"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_FILTER_BACKENDS": ["django_filters.rest_framework.DjangoFilterBackend"],
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.IsAuthenticated"],
    "EXCEPTION_HANDLER": "companyops.api.v1.exceptions.domain_exception_handler",
}

# ==== Company operations ====
CQ_REMINDER_HOUR = env("CQ_REMINDER_HOUR")
# appConfig defaults until an admin saves the settings document
CQ_SHIFT1_START = env("CQ_SHIFT1_START")
CQ_SHIFT1_END = env("CQ_SHIFT1_END")
CQ_SHIFT2_START = env("CQ_SHIFT2_START")
CQ_SHIFT2_END = env("CQ_SHIFT2_END")
LIBERTY_DEADLINE_DAY = env("LIBERTY_DEADLINE_DAY")  # 0 = Sunday
LIBERTY_DEADLINE_TIME = env("LIBERTY_DEADLINE_TIME")

PUSH_BACKEND = env("PUSH_BACKEND")
FCM_CREDENTIALS_FILE = env("FCM_CREDENTIALS_FILE")
PUSH_APP_LINK = env("PUSH_APP_LINK")

WEATHER_API_URL = env("WEATHER_API_URL")
WEATHER_API_KEY = env("WEATHER_API_KEY")
WEATHER_API_TIMEOUT = env("WEATHER_API_TIMEOUT")

CELERY_BROKER_URL = env("REDIS_URL")
CELERY_RESULT_BACKEND = env("REDIS_URL")
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULE = {
    # gated inside the task by the configured UOTD slot times
    "weather-check": {
        "task": "companyops.tasks.scheduled_weather_check",
        "schedule": crontab(minute="*"),
    },

    "cq-reminder": {
        "task": "companyops.tasks.daily_cq_reminder",
        "schedule": crontab(minute=0, hour=CQ_REMINDER_HOUR),
    },
}

EMAIL_BACKEND = env("EMAIL_BACKEND")
EMAIL_HOST = env("EMAIL_HOST")
EMAIL_PORT = env("EMAIL_PORT")
EMAIL_HOST_USER = env("EMAIL_HOST_USER")
EMAIL_HOST_PASSWORD = env("EMAIL_HOST_PASSWORD")
EMAIL_USE_TLS = env("EMAIL_USE_TLS")
DEFAULT_FROM_EMAIL = env("DEFAULT_FROM_EMAIL")

LOG_DIR = BASE_DIR / "logs"
LOG_DIR.mkdir(exist_ok=True)


def _file_handler(name, level="INFO"):
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "filename": LOG_DIR / name,
        "maxBytes": 5 * 1024 * 1024,
        "backupCount": 5,
        "formatter": "detailed",
        "level": level,
    }


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "detailed": {"format": "%(asctime)s %(levelname)s [%(name)s:%(lineno)d] %(message)s"},
        "short": {"format": "%(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "short"},
        "app_file": _file_handler("companyops.log"),
        "error_file": _file_handler("errors.log", level="ERROR"),
    },
    "loggers": {
        # companyops.request, companyops.services.* and companyops.tasks inherit this
        "companyops": {"handlers": ["console", "app_file", "error_file"], "level": "INFO", "propagate": False},
        "django": {"handlers": ["console", "app_file"], "level": "WARNING", "propagate": False},
        "django.request": {"handlers": ["error_file"], "level": "ERROR", "propagate": True},
        "celery": {"handlers": ["console", "app_file"], "level": "INFO", "propagate": False},
    },
}
