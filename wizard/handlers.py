# wizard/handlers.py
"""
Обработчики событий мастера. Каждый: перечитанная сессия → проверка → точечный
update → перерисовка одного отслеживаемого сообщения. Новое сообщение бот шлёт
только при создании мастера и после создания тикета.

Ошибки мастера (NotFound / ValidationFailure / SubmitBlocked) летят наверх в router.
"""
import os
from logger import logger
from state import state
from utils import masters, media, tickets
from utils import telegram_senders as tg
from utils.constants import AGENCY_DATE, DEFAULT_MIN_ISSUE_TEXT_LEN
from utils.env_flags import env_int
from wizard.errors import SubmitBlocked, ValidationFailure
from wizard.fields import (
    apply_choice, apply_photo, apply_text, expects_text, reset_patch, supports_manual,
)
from wizard.locations import browse_back, select_location
from wizard.message_builder import CANCELLED_TEXT, build_confirmation, build_wizard_message
from wizard.resolver import can_submit, get_active_field, schema_for
from wizard.schema import KIND_PHOTO, KIND_TREE, find_field
from wizard.ticket_builder import create_ticket_from_wizard

PLACEHOLDER_TEXT = "🛠 <b>Ticket Wizard</b>\n📝 Creating your ticket…"
PHOTO_ONLY_TEXT = "Photo attachment"
STEP_COMPLETE = "complete"


def _min_text_len() -> int:
    return env_int("MIN_ISSUE_TEXT_LEN", DEFAULT_MIN_ISSUE_TEXT_LEN)


def allowed_chat_types() -> set[str]:
    raw = os.getenv("WIZARD_CHAT_TYPES", "group,supergroup")
    return {t.strip() for t in raw.split(",") if t.strip()}


# ─── синхронизация и перерисовка ────────────────────────────────
def _wanted_input(session: dict, active) -> str | None:
    """Какое поле ждёт текст/фото прямо сейчас (None: никакое)."""
    if active is None:
        return None
    if expects_text(active) or active.kind == KIND_PHOTO:
        return active.key
    if session.get("pending_input") == active.key and supports_manual(active):
        # пользователь сам попросил ввести категорию / локацию текстом
        return active.key
    return None


def sync_step(session: dict) -> dict:
    active = get_active_field(session)
    patch = {}
    step = active.key if active else STEP_COMPLETE
    if session.get("current_step") != step:
        patch["current_step"] = step
    wanted = _wanted_input(session, active)
    if session.get("pending_input") != wanted:
        patch["pending_input"] = wanted
        # «✍️ Type» относился к прежнему полю
        patch["input_requested"] = False
    if not patch:
        return session
    updated = state.update_session(session["bot_message_id"], patch)
    return updated if updated is not None else {**session, **patch}


def refresh(ref, notice: str | None = None, browse: dict | None = None) -> dict | None:
    """Перечитать сессию и перерисовать сообщение. Ошибка отрисовки не отменяет уже записанное."""
    session = state.get_session(ref)
    if session is None:
        return None
    session = sync_step(session)
    try:
        msg = build_wizard_message(session, notice=notice, browse=browse)
    except Exception as e:
        logger.exception(f"💥 [wizard] render failed for {ref}: {e}")
        return session
    if not tg.edit_message(session["chat_id"], ref, msg["text"], msg["options"]):
        logger.warning(f"[wizard] edit failed for {ref}, перерисуем на следующем событии")
    return session


def _field_or_stale(session: dict, key: str, ctx: dict):
    field = find_field(schema_for(session), key)
    if field is None:
        # кнопка от старой схемы (правило поменяли): просто перерисуем
        tg.answer_callback(ctx["callback_id"], "This step is not available anymore.")
        refresh(session["bot_message_id"])
    return field


# ─── кнопки ─────────────────────────────────────────────────────
def handle_select(session: dict, token, ctx: dict) -> dict:
    ref = session["bot_message_id"]
    field = _field_or_stale(session, token.field_key, ctx)
    if field is None:
        return {"ok": False, "error": "stale_field"}

    leaf = None
    if field.kind == KIND_TREE:
        patch, leaf = select_location(session, field.key, token.value)
    else:
        patch = apply_choice(session, field, token.value)
    if patch:
        patch["pending_input"] = None
        if state.update_session(ref, patch) is None:
            tg.answer_callback(ctx["callback_id"], "⌛ This wizard has expired.", show_alert=True)
            return {"ok": False, "error": "expired"}
    refresh(ref)
    tg.answer_callback(ctx["callback_id"])
    return {"ok": True, "field": field.key, "leaf": leaf}


def handle_back(session: dict, token, ctx: dict) -> dict:
    ref = session["bot_message_id"]
    field = _field_or_stale(session, token.field_key, ctx)
    if field is None:
        return {"ok": False, "error": "stale_field"}
    if field.kind != KIND_TREE:
        raise ValidationFailure("Nothing to go back to here.")
    browse = browse_back(field.key, token.value)
    refresh(ref, browse=browse)
    tg.answer_callback(ctx["callback_id"])
    return {"ok": True, "field": field.key, "browse": browse}


def handle_type(session: dict, token, ctx: dict) -> dict:
    ref = session["bot_message_id"]
    field = _field_or_stale(session, token.field_key, ctx)
    if field is None:
        return {"ok": False, "error": "stale_field"}
    if not (supports_manual(field) or expects_text(field)):
        raise ValidationFailure("This field can't be typed. Please use the buttons.")
    # после явного нажатия следующее сообщение пользователя можно слать и не ответом
    state.update_session(ref, {"pending_input": field.key, "input_requested": True})
    refresh(ref)
    tg.answer_callback(ctx["callback_id"], "✍️ Send the text as your next message.")
    return {"ok": True, "field": field.key}


def handle_edit(session: dict, token, ctx: dict) -> dict:
    ref = session["bot_message_id"]
    field = _field_or_stale(session, token.field_key, ctx)
    if field is None:
        return {"ok": False, "error": "stale_field"}
    patch = reset_patch(session, field)
    patch.update(pending_input=None, input_requested=False)
    state.update_session(ref, patch)
    refresh(ref)
    tg.answer_callback(ctx["callback_id"], f"✏️ {field.label}")
    return {"ok": True, "field": field.key}


def handle_skip(session: dict, token, ctx: dict) -> dict:
    ref = session["bot_message_id"]
    if find_field(schema_for(session), AGENCY_DATE) is None or session.get("agency_required") is not True:
        raise ValidationFailure("There is no agency date to skip.")
    state.update_session(ref, {"agency_date": None, "agency_date_skipped": True,
                               "pending_input": None, "input_requested": False})
    refresh(ref)
    tg.answer_callback(ctx["callback_id"], "⏭ Date skipped")
    return {"ok": True, "field": AGENCY_DATE}


def handle_submit(session: dict, token, ctx: dict) -> dict:
    ref = session["bot_message_id"]
    # сессию router перечитал только что; проверяем по ней, не по тому, что видел пользователь
    if not can_submit(session):
        raise SubmitBlocked("Some required fields are still missing.",
                            missing=get_active_field(session).key)

    # захват: удалить может только один, второй параллельный submit получит None
    claimed = state.delete_session(ref)
    if claimed is None:
        tg.answer_callback(ctx["callback_id"], "This ticket is already being created.")
        return {"ok": False, "error": "already_claimed"}

    try:
        ticket = create_ticket_from_wizard(claimed, created_by=ctx.get("user_name"))
    except Exception:
        state.restore_session(claimed)
        raise

    chat_id = claimed["chat_id"]
    ticket_id = ticket["ticket_id"]
    confirmation_id = tg.send_message(chat_id, build_confirmation(ticket_id, claimed),
                                      reply_to=claimed.get("original_message_id"))
    if confirmation_id:
        tickets.attach_confirmation(ticket_id, chat_id, confirmation_id)
    tg.delete_message(chat_id, ref)
    tg.answer_callback(ctx["callback_id"], f"✅ Ticket {ticket_id} created")
    logger.info(f"✅ [wizard] {ref} → {ticket_id}")
    return {"ok": True, "ticket_id": ticket_id}


def handle_cancel(session: dict, token, ctx: dict) -> dict:
    ref = session["bot_message_id"]
    state.delete_session(ref)
    tg.edit_message(session["chat_id"], ref, CANCELLED_TEXT)
    tg.answer_callback(ctx["callback_id"], "Cancelled")
    logger.info(f"[wizard] {ref} cancelled by {ctx.get('user_id')}")
    return {"ok": True, "cancelled": True}


# ─── текст и фото ───────────────────────────────────────────────
def handle_text(session: dict, text: str, ctx: dict) -> dict:
    ref = session["bot_message_id"]
    active = get_active_field(session)
    pending = session.get("pending_input")
    if active is None or not pending or pending != active.key:
        refresh(ref, notice="Please use the buttons for this step.")
        return {"ok": False, "error": "not_waiting"}
    try:
        patch = apply_text(session, active, text)
    except ValidationFailure as e:
        # сессию не трогаем, просим повторить прямо в сообщении мастера
        refresh(ref, notice=e.message)
        return {"ok": False, "error": "validation", "notice": e.message}
    patch.update(pending_input=None, input_requested=False)
    state.update_session(ref, patch)
    refresh(ref)
    return {"ok": True, "field": active.key}


def handle_photo(session: dict, file_id: str, ctx: dict) -> dict:
    ref = session["bot_message_id"]
    url = media.store_telegram_photo(file_id)
    if not url:
        refresh(ref, notice="Couldn't save the photo. Please try again.")
        return {"ok": False, "error": "upload_failed"}
    active = get_active_field(session)
    if active is not None and active.kind == KIND_PHOTO and session.get("pending_input") == active.key:
        patch = apply_photo(session, active, url)
        patch.update(pending_input=None, input_requested=False)
    else:
        patch = {"photos": list(session.get("photos") or []) + [url]}
    state.update_session(ref, patch)
    refresh(ref)
    return {"ok": True, "photo": url}


def handle_new_issue(message: dict, ctx: dict) -> dict:
    """Сообщение в группе → новый мастер, ключ сессии = id ответа бота."""
    text = (message.get("text") or message.get("caption") or "").strip()
    photo = message.get("photo") or []
    if len(text) < _min_text_len() and not photo:
        return {"ok": False, "ignored": "too_short"}

    photos = []
    if photo:
        url = media.store_telegram_photo(photo[-1]["file_id"])    # самый большой размер идёт последним
        if url:
            photos.append(url)
        elif len(text) < _min_text_len():
            return {"ok": False, "ignored": "photo_failed"}

    category = masters.detect_category(text)
    chat_id = ctx["chat_id"]
    bot_message_id = tg.send_message(chat_id, PLACEHOLDER_TEXT, reply_to=message.get("message_id"))
    if not bot_message_id:
        logger.error(f"❌ [wizard] could not open wizard in chat {chat_id}")
        return {"ok": False, "error": "send_failed"}

    session = state.new_session(
        chat_id, ctx.get("user_id"), bot_message_id, text or PHOTO_ONLY_TEXT,
        original_message_id=message.get("message_id"),
        category=str(category["id"]) if category else None,
        category_display=(category.get("display_name") or category.get("name")) if category else None,
        photos=photos,
    )
    state.create_session(session)
    logger.info(f"🆕 [wizard] {bot_message_id} opened in chat {chat_id} "
                f"category={session['category'] or '-'}")
    refresh(bot_message_id)
    return {"ok": True, "ref": bot_message_id, "category": session["category"]}
