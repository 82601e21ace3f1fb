from utils.env_loader import ensure_env_loaded
ensure_env_loaded()
import os, logging
from utils.env_flags import storage_backend

CRITICAL_VARS = [
    "TELEGRAM_BOT_TOKEN", "TELEGRAM_WEBHOOK_SECRET",
    "SUPABASE_URL", "SUPABASE_API_KEY",
]

WARNING_VARS = [
    "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "S3_BUCKET",
    "PUBLIC_BASE_URL",
]

def _missing(keys):              # helper
    return [k for k in keys if not os.getenv(k)]

def check_env():
    logging.info("ENV loaded from: %s", os.getenv("_ENV_DEBUG_PATH") or "<os env only>")

    miss_crit = _missing(CRITICAL_VARS)
    miss_warn = _missing(WARNING_VARS)

    # в LOCAL_DEV Supabase не нужен: не пугаем лишний раз
    if storage_backend() == "memory":
        miss_crit = [k for k in miss_crit if not k.startswith("SUPABASE_")]

    if miss_crit:
        logging.critical("🚨 Missing ENV (critical): %s", ", ".join(miss_crit))
    if miss_warn:
        logging.warning("⚠️ Missing ENV (warning): %s", ", ".join(miss_warn))

if __name__ == "__main__":
    check_env()
