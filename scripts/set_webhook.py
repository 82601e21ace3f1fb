# scripts/set_webhook.py: регистрирует <PUBLIC_BASE_URL>/webhook у Telegram
from utils.env_loader import ensure_env_loaded
ensure_env_loaded()
import os, sys, requests

ALLOWED_UPDATES = ["message", "callback_query"]


def set_webhook() -> dict:
    token = os.getenv("TELEGRAM_BOT_TOKEN")
    base = os.getenv("PUBLIC_BASE_URL")
    secret = os.getenv("TELEGRAM_WEBHOOK_SECRET")
    if not (token and base and secret):
        raise RuntimeError("нужны TELEGRAM_BOT_TOKEN, PUBLIC_BASE_URL и TELEGRAM_WEBHOOK_SECRET")
    resp = requests.post(
        f"https://api.telegram.org/bot{token}/setWebhook",
        json={
            "url": f"{base.rstrip('/')}/webhook",
            "secret_token": secret,
            "allowed_updates": ALLOWED_UPDATES,
            "drop_pending_updates": True,
        },
        timeout=20,
    )
    resp.raise_for_status()
    return resp.json()


if __name__ == "__main__":
    result = set_webhook()
    print("✅ webhook set" if result.get("ok") else f"❌ {result}")
    sys.exit(0 if result.get("ok") else 1)
