# router.py
from state import state
from logger import logger
from utils import telegram_senders as tg
from wizard import callback_data as cb
from wizard import handlers
from wizard.errors import NotFound, SubmitBlocked, ValidationFailure
from wizard.message_builder import EXPIRED_TEXT, is_wizard_text

# --- <action> → (module, handler_name) --------------------------------------
ACTION_MAP = {
    cb.SELECT: (handlers, "handle_select"),
    cb.BACK:   (handlers, "handle_back"),
    cb.TYPE:   (handlers, "handle_type"),
    cb.EDIT:   (handlers, "handle_edit"),
    cb.SKIP:   (handlers, "handle_skip"),
    cb.SUBMIT: (handlers, "handle_submit"),
    cb.CANCEL: (handlers, "handle_cancel"),
}

TECH_ERROR_TEXT = "Technical error, please try again later."


def _user_name(user: dict) -> str:
    if user.get("username"):
        return f"@{user['username']}"
    name = " ".join(p for p in (user.get("first_name"), user.get("last_name")) if p)
    return name or str(user.get("id") or "unknown")


# ---------------------------------------------------------------------------
def route_callback(query: dict) -> dict:
    """
    · Разбираем callback_data
    · Перечитываем сессию (протухла → понятный ответ, без падения)
    · Дергаем нужный handler, ошибки мастера превращаем в тосты
    """
    callback_id = query.get("id")
    message = query.get("message") or {}
    chat_id = (message.get("chat") or {}).get("id")
    user = query.get("from") or {}

    try:
        token = cb.decode(query.get("data") or "")
    except ValueError as e:
        logger.warning(f"[router] ignore callback: {e}")
        tg.answer_callback(callback_id)
        return {"ok": False, "error": "bad_token"}

    logger.info(f"[router] callback action={token.action} ref={token.ref} "
                f"field={token.field_key or '-'} user={user.get('id')}")

    session = state.get_session(token.ref)
    if session is None:
        tg.answer_callback(callback_id, "⌛ This wizard has expired or is already closed.", show_alert=True)
        if chat_id:
            tg.edit_message(chat_id, token.ref, EXPIRED_TEXT)
        return {"ok": False, "error": "expired"}

    ctx = {
        "callback_id": callback_id,
        "chat_id": chat_id or session.get("chat_id"),
        "user_id": user.get("id"),
        "user_name": _user_name(user),
    }
    mod, handler_name = ACTION_MAP[token.action]
    handler = getattr(mod, handler_name)

    try:
        return handler(session, token, ctx)
    except NotFound as e:
        tg.answer_callback(callback_id, e.message)
        handlers.refresh(token.ref, notice=e.message)
        return {"ok": False, "error": "not_found"}
    except ValidationFailure as e:
        tg.answer_callback(callback_id, e.message, show_alert=True)
        return {"ok": False, "error": "validation"}
    except SubmitBlocked as e:
        tg.answer_callback(callback_id, "⚠️ Please complete all required fields first.", show_alert=True)
        handlers.refresh(token.ref)
        return {"ok": False, "error": "submit_blocked", "missing": e.missing}
    except Exception as e:
        logger.exception(f"💥 Ошибка в обработчике {token.action} для {token.ref}: {e}")
        tg.answer_callback(callback_id, TECH_ERROR_TEXT, show_alert=True)
        return {"ok": False, "error": "internal"}


def route_message(message: dict) -> dict:
    """
    Входящее сообщение группы:
      · ответ на сообщение мастера: текст/фото для него
      · ответ на закрытый мастер: «мастер истёк», новый не открываем
      · иначе текст для мастера, где пользователь нажал «✍️ Type»
      · иначе, если сообщение подходит, новый мастер
    """
    chat = message.get("chat") or {}
    user = message.get("from") or {}
    if user.get("is_bot"):
        return {"ok": False, "ignored": "bot"}

    text = (message.get("text") or message.get("caption") or "").strip()
    photo = message.get("photo") or []
    reply = message.get("reply_to_message") or {}
    ctx = {"chat_id": chat.get("id"), "user_id": user.get("id"), "user_name": _user_name(user)}

    logger.info(f"[router] message chat={ctx['chat_id']} user={ctx['user_id']} "
                f"reply_to={reply.get('message_id')} photo={bool(photo)} len={len(text)}")

    if text.startswith("/"):
        return {"ok": False, "ignored": "command"}

    try:
        session = state.get_session(reply["message_id"]) if reply.get("message_id") else None
        if session is not None:
            if photo:
                return handlers.handle_photo(session, photo[-1]["file_id"], ctx)
            if text:
                return handlers.handle_text(session, text, ctx)
            return {"ok": False, "ignored": "empty"}
        if reply.get("message_id") and (reply.get("from") or {}).get("is_bot"):
            # ответ на сообщение бота, а сессии уже нет: мастер закрыт или истёк
            if is_wizard_text(reply.get("text")):
                logger.info(f"[router] reply to closed wizard {reply['message_id']} in chat {ctx['chat_id']}")
                tg.send_message(ctx["chat_id"], EXPIRED_TEXT, reply_to=message.get("message_id"))
                return {"ok": False, "error": "expired"}
            return {"ok": False, "ignored": "bot_reply"}

        if text and not photo:
            pending = state.find_pending_session(ctx["chat_id"], ctx["user_id"])
            if pending is not None:
                return handlers.handle_text(pending, text, ctx)

        if chat.get("type") not in handlers.allowed_chat_types():
            return {"ok": False, "ignored": "chat_type"}
        return handlers.handle_new_issue(message, ctx)
    except Exception as e:
        logger.exception(f"💥 Ошибка при обработке сообщения в чате {ctx['chat_id']}: {e}")
        return {"ok": False, "error": "internal"}
