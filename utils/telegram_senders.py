from utils.env_loader import ensure_env_loaded
ensure_env_loaded()
import os, requests, logging

logger = logging.getLogger("bot")

API_BASE = "https://api.telegram.org"
MAX_LEN  = 4096                                         # лимит Telegram для text


# ─── служебка ────────────────────────────────────────────────────
def _token() -> str:
    # читаем при каждом вызове: токен могут поменять без рестарта (и тесты тоже)
    return os.getenv("TELEGRAM_BOT_TOKEN", "")


def _api_url(method: str) -> str:
    return f"{API_BASE}/bot{_token()}/{method}"


def _markup(keyboard: list[list[dict]] | None) -> dict | None:
    if keyboard is None:
        return None
    return {"inline_keyboard": keyboard}


def _post(method: str, payload: dict, tag: str) -> dict | None:
    """
    Один вызов Bot API. Ошибки только логируем: состояние мастера хранится
    в сессии, следующее событие перерисует сообщение заново.
    """
    try:
        resp = requests.post(_api_url(method), json=payload, timeout=20)
        data = resp.json() if resp.content else {}
        if not resp.ok or not data.get("ok"):
            logger.error("❌ TG %s chat=%s: %s %s • payload=%s",
                         tag, payload.get("chat_id"), resp.status_code,
                         data.get("description"), payload)
            return None
        logger.info("➡️ TG %s ok → %s", tag, payload.get("chat_id"))
        return data.get("result")
    except (requests.RequestException, ValueError) as e:
        logger.error("❌ TG %s chat=%s: %s", tag, payload.get("chat_id"), e)
        return None


# ─── публичные функции ──────────────────────────────────────────
def send_message(chat_id, text: str, reply_to=None, keyboard=None) -> int | None:
    payload = {
        "chat_id": chat_id,
        "text": text[:MAX_LEN],
        "parse_mode": "HTML",
        "disable_web_page_preview": True,
    }
    if reply_to:
        payload["reply_parameters"] = {"message_id": reply_to, "allow_sending_without_reply": True}
    markup = _markup(keyboard)
    if markup:
        payload["reply_markup"] = markup
    result = _post("sendMessage", payload, "send")
    return result.get("message_id") if result else None


def edit_message(chat_id, message_id, text: str, keyboard=None) -> bool:
    payload = {
        "chat_id": chat_id,
        "message_id": message_id,
        "text": text[:MAX_LEN],
        "parse_mode": "HTML",
        "disable_web_page_preview": True,
        "reply_markup": _markup(keyboard) or {"inline_keyboard": []},
    }
    return _post("editMessageText", payload, "edit") is not None


def answer_callback(callback_id: str, text: str | None = None, show_alert: bool = False) -> None:
    payload = {"callback_query_id": callback_id, "show_alert": show_alert}
    if text:
        payload["text"] = text[:200]
    _post("answerCallbackQuery", payload, "answer")


def delete_message(chat_id, message_id) -> None:
    _post("deleteMessage", {"chat_id": chat_id, "message_id": message_id}, "delete")


def get_file_bytes(file_id: str) -> bytes | None:
    """getFile → скачиваем сам файл. None, если Telegram не отдал."""
    result = _post("getFile", {"file_id": file_id}, "getFile")
    if not result or not result.get("file_path"):
        return None
    url = f"{API_BASE}/file/bot{_token()}/{result['file_path']}"
    try:
        resp = requests.get(url, timeout=30)
        resp.raise_for_status()
        return resp.content
    except requests.RequestException as e:
        logger.error("❌ TG download %s: %s", file_id, e)
        return None
