import hmac
from flask import Blueprint, request, abort, Response, current_app
from logger import logger
from router import route_callback, route_message

webhook_bp = Blueprint("webhook", __name__)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def _check_secret() -> bool:
    """
    Telegram присылает секрет, заданный в setWebhook, в заголовке
    X-Telegram-Bot-Api-Secret-Token. Сравниваем за постоянное время.
    """
    want = current_app.config.get("TELEGRAM_WEBHOOK_SECRET")
    if not want:
        logger.error("VERIFICATION FAILED (no TELEGRAM_WEBHOOK_SECRET in config)")
        return False
    got = request.headers.get(SECRET_HEADER, "")
    ok = hmac.compare_digest(got.encode("utf-8"), want.encode("utf-8"))
    if not ok:
        logger.error("VERIFICATION FAILED")
    return ok


@webhook_bp.route("/webhook", methods=["POST"])
def webhook():
    # 1) Проверка секрета
    if not _check_secret():
        return abort(403)

    # 2) Парсинг JSON (тихо, без исключений)
    data = request.get_json(silent=True) or {}
    logger.info("📩 webhook update_id=%s keys=%s", data.get("update_id"), sorted(data))

    if data.get("callback_query"):
        route_callback(data["callback_query"])
    elif data.get("message"):
        route_message(data["message"])

    # всегда 200: иначе Telegram будет повторять доставку
    return Response("ok", mimetype="text/plain")
