from .settings import *
import os
from dotenv import load_dotenv
load_dotenv(os.path.join(BASE_DIR, '..', '.env'))

DEBUG = False
SECRET_KEY = os.environ["DJANGO_SECRET_KEY"]
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(',')

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels_redis.core.RedisChannelLayer",
        "CONFIG": {
            "hosts": [os.getenv("REDIS_URL", "redis://localhost:6379/0")],
        },
    }
}

ENTITY_STORE = {
    "BACKEND": "realtime.store.redis_store.RedisEntityStore",
    "OPTIONS": {
        "url": os.getenv("ENTITY_STORE_URL", "redis://localhost:6379/1"),
    },
    "BROADCAST": True,
}
