# config/settings.py
import os
from pathlib import Path

from dotenv import load_dotenv
from datetime import timedelta

BASE_DIR = Path(__file__).resolve().parent.parent.parent  # backend/
load_dotenv(BASE_DIR / ".env")

REDIS_HOST = os.environ.get("REDIS_HOST", "127.0.0.1")
REDIS_PORT = int(os.environ.get("REDIS_PORT", "6379"))
REDIS_DB = int(os.environ.get("REDIS_DB", "0"))


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = os.environ.get("DJANGO_DEBUG", "0") == "1"
ALLOWED_HOSTS = [
    h.strip()
    for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "").split(",")
    if h.strip()
]
CORS_ALLOW_ALL_ORIGINS = True

CORS_ALLOW_CREDENTIALS = True

# 유저/세션/하이파이브는 전부 Redis 문서 저장소에 있음. 관계형 DB 없음
DATABASES = {}

INSTALLED_APPS = [
    # TokenUser / AnonymousUser 가 auth 모델을 참조해서 필요
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.staticfiles",
    # third party
    "rest_framework",
    "channels",
    "corsheaders",
    # local apps
    "app.common",
    "app.users",
    "app.friends",
    "app.highfives",
    "app.notifications",
]


CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels_redis.core.RedisChannelLayer",
        "CONFIG": {
            "hosts": [(REDIS_HOST, REDIS_PORT)],
        },
    }
}

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTStatelessUserAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": ("rest_framework.permissions.IsAuthenticated",),
    "DEFAULT_RENDERER_CLASSES": ("rest_framework.renderers.JSONRenderer",),
    "EXCEPTION_HANDLER": "app.common.exceptions.custom_exception_handler",
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(days=7),
    "SIGNING_KEY": os.environ.get("JWT_SECRET", SECRET_KEY),
    "USER_ID_CLAIM": "user_id",
    "TOKEN_USER_CLASS": "rest_framework_simplejwt.models.TokenUser",
}

HIGHFIVE = {
    "STORE_BACKEND": os.environ.get("HIGHFIVE_STORE_BACKEND", "app.common.redis_store.RedisDocumentStore"),
    "SESSION_ACTIVE_WINDOW_MS": 5 * 60 * 1000,  # 5분
    "ATTEMPT_TIMEOUT_MS": int(os.environ.get("HIGHFIVE_ATTEMPT_TIMEOUT_MS", "5000")),
    "MAX_SKEW_MS": 2000,
    "ONLINE_THRESHOLD_MS": 5000,
    "HEARTBEAT_INTERVAL_MS": 1000,
    "STALE_SESSION_POLICY": os.environ.get("HIGHFIVE_STALE_SESSION_POLICY", "keep"),
    "STALE_SESSION_TTL_MS": 24 * 60 * 60 * 1000,
    "NOTIFICATION_BACKENDS": [
        "app.notifications.dispatcher.StoreNotificationBackend",
        "app.notifications.dispatcher.ChannelLayerNotificationBackend",
    ],
}

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.middleware.common.CommonMiddleware",
]

LOGLEVEL = os.environ.get("LOGLEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "console": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "console",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "app": {
            "handlers": ["console"],
            "level": LOGLEVEL,
            "propagate": False,
        },
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
    },
}

ROOT_URLCONF = "app.config.urls"

ASGI_APPLICATION = "app.config.asgi.application"  # channels(websocket)용
APPEND_SLASH = False
USE_TZ = True
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

STORAGES = {
    "default": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
    },
    "staticfiles": {
        "BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage",
    },
}
