import os
from dotenv import load_dotenv

from skillswap.utils.env_helper import (
    env_bool,
    env_float,
    env_int,
    env_list,
    env_none_or_str,
)

load_dotenv()


# Supabase
SUPABASE_URL = env_none_or_str("PUBLIC_SUPABASE_URL", None)
SUPABASE_KEY = env_none_or_str("SECRET_API_KEY", None)
JWT_SIGN_KEY = env_none_or_str("SUPABASE_JWT_SECRET", None)

# Document store
STORE_BACKEND = os.getenv("STORE_BACKEND", "supabase").lower()  # "supabase" or "memory"
STORE_MAX_ATTEMPTS = env_int("STORE_MAX_ATTEMPTS", 3)
STORE_BACKOFF_BASE = env_float("STORE_BACKOFF_BASE", 0.5)  # seconds
STORE_BACKOFF_MAX = env_float("STORE_BACKOFF_MAX", 8.0)
MIGRATE_ON_STARTUP = env_bool("MIGRATE_ON_STARTUP", False)  # rewrite legacy connection docs

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "default")  # "default" or "json"

# TODO: update origins for prod
CORS_ORIGINS = env_list(
    "CORS_ORIGINS",
    [
        "http://localhost:5173",
        "http://localhost:8080",
    ],
)
