from pathlib import Path
import os
import sys
import dj_database_url

BASE_DIR = Path(__file__).resolve().parent.parent


def env(name: str, default=None):
    return os.environ.get(name, os.environ.get(f"DJANGO_{name}", default))


def env_bool(name: str, default="0") -> bool:
    return str(env(name, default)).strip().lower() in ("1", "true", "yes", "on")


def env_float(name: str, default: float) -> float:
    try:
        return float(env(name, default))
    except (TypeError, ValueError):
        return float(default)


def split_csv(value) -> list[str]:
    cleaned = (value or "").replace(" ", "")
    return [x for x in cleaned.split(",") if x]


SECRET_KEY = env("SECRET_KEY", "dev-only-change-me")
DEBUG = env_bool("DEBUG", "1" if ("runserver" in sys.argv) else "0")

ALLOWED_HOSTS = split_csv(env("ALLOWED_HOSTS", "127.0.0.1,localhost"))

RUNNING_TESTS = ("test" in sys.argv) or ("pytest" in sys.modules)
if DEBUG or RUNNING_TESTS:
    if "testserver" not in ALLOWED_HOSTS:
        ALLOWED_HOSTS.append("testserver")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "pipeline",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "cloud_tools.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
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

WSGI_APPLICATION = "cloud_tools.wsgi.application"

# Database
# Default: SQLite on a persistent disk. Holds job records and the database-backed queue.
sqlite_path = env("SQLITE_PATH", "/var/data/db.sqlite3")
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": sqlite_path if not DEBUG else str(BASE_DIR / "db.sqlite3"),
        "OPTIONS": {"timeout": 20},
    }
}

# Optional: Postgres if DATABASE_URL is provided
database_url = env("DATABASE_URL")
if database_url:
    DATABASES["default"] = dj_database_url.parse(database_url, conn_max_age=600, ssl_require=False)

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Local blob storage (STORAGE_BACKEND=filesystem)
MEDIA_ROOT = env("MEDIA_ROOT", "/var/data/media")
MEDIA_URL = env("MEDIA_URL", "/media/")
PUBLIC_BASE_URL = env("PUBLIC_BASE_URL", "")

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {
        "BACKEND": (
            "django.contrib.staticfiles.storage.StaticFilesStorage"
            if DEBUG or RUNNING_TESTS
            else "whitenoise.storage.CompressedManifestStaticFilesStorage"
        )
    },
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Worker backends
QUEUE_BACKEND = env("QUEUE_BACKEND", "sqs")  # sqs | database
STORAGE_BACKEND = env("STORAGE_BACKEND", "s3")  # s3 | filesystem
JOB_STORE_BACKEND = env("JOB_STORE_BACKEND", "django")  # django | dynamodb

# AWS (LocalStack when AWS_ENDPOINT_URL is set)
AWS_REGION = env("AWS_REGION", "us-east-1")
AWS_ENDPOINT_URL = env("AWS_ENDPOINT_URL")
AWS_ACCESS_KEY_ID = env("AWS_ACCESS_KEY_ID")
AWS_SECRET_ACCESS_KEY = env("AWS_SECRET_ACCESS_KEY")
S3_BUCKET_NAME = env("S3_BUCKET_NAME", "cloud-tools-local-bucket")
SQS_QUEUE_NAME = env("SQS_QUEUE_NAME", "cloud-tools-jobs-queue")
SQS_QUEUE_URL = env("SQS_QUEUE_URL")
SQS_WAIT_SECONDS = int(env_float("SQS_WAIT_SECONDS", 20))
DDB_TABLE_NAME = env("DDB_TABLE_NAME", "CloudToolsJobs")

# Worker loop
WORKER_POLL_SECONDS = env_float("WORKER_POLL_SECONDS", 5)
DB_QUEUE_VISIBILITY_TIMEOUT = env_float("DB_QUEUE_VISIBILITY_TIMEOUT", 300)
DB_QUEUE_WAIT_SECONDS = env_float("DB_QUEUE_WAIT_SECONDS", 0)

# External tools
FFMPEG_BIN = env("FFMPEG_BIN", "ffmpeg")
EBOOK_CONVERT_BIN = env("EBOOK_CONVERT_BIN", "ebook-convert")

LOG_LEVEL = str(env("LOG_LEVEL", "INFO")).upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "pipeline": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "botocore": {"handlers": ["console"], "level": "WARNING", "propagate": False},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
}

# CSRF
csrf_env = env("CSRF_TRUSTED_ORIGINS")
if csrf_env:
    CSRF_TRUSTED_ORIGINS = [x.strip() for x in str(csrf_env).split(",") if x.strip()]

# Production hardening (admin + healthz are the only HTTP surface)
if not DEBUG and not RUNNING_TESTS:
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
    USE_X_FORWARDED_HOST = True

    CSRF_COOKIE_SECURE = True
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True

    SECURE_HSTS_SECONDS = int(env("SECURE_HSTS_SECONDS", 60 * 60 * 24 * 30))
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True

    SECURE_SSL_REDIRECT = env_bool("SECURE_SSL_REDIRECT", "1")
    SECURE_CONTENT_TYPE_NOSNIFF = True
    SECURE_REFERRER_POLICY = "same-origin"
    X_FRAME_OPTIONS = "DENY"
