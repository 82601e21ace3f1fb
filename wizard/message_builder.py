# wizard/message_builder.py
"""
Сообщение мастера целиком (текст + inline-клавиатура) из сессии и справочников.
Никакого другого состояния: тот же вход → тот же выход, поэтому
любое событие может спокойно перерисовать сообщение заново.
"""
import html
from utils.constants import AGENCY, AGENCY_DATE, CATEGORY, LOCATION, EMPTY_VALUE
from wizard import callback_data as cb
from wizard.display import display_value, format_path
from wizard.fields import choices, expects_text, supports_manual
from wizard.locations import current_level
from wizard.resolver import ACTIVE, COMPLETE, PENDING, field_statuses, progress
from wizard.schema import (
    KIND_BOOLEAN, KIND_CHOICE, KIND_DATE, KIND_NUMBER, KIND_PHOTO, KIND_TREE,
)

ISSUE_PREVIEW_LEN = 300
WIZARD_TITLE = "🎫 <b>New ticket</b>"
EXPIRED_TEXT = "⌛ This ticket wizard has expired. Send the issue again to start over."
CANCELLED_TEXT = "❌ Wizard cancelled. No ticket was created."
# так начинается plain-текст сообщения мастера в reply_to_message (HTML-теги Telegram срезает)
_WIZARD_PREFIXES = ("🎫 New ticket", "🛠 Ticket Wizard", EXPIRED_TEXT, CANCELLED_TEXT)


def is_wizard_text(text: str | None) -> bool:
    """Похоже ли сообщение бота на мастер (живой, закрытый или истёкший)."""
    return bool(text) and text.startswith(_WIZARD_PREFIXES)


def _e(value) -> str:
    return html.escape(str(value), quote=False)


def _button(text: str, data: str) -> dict:
    return {"text": text, "callback_data": data}


def _rows(buttons: list[dict], per_row: int = 2) -> list[list[dict]]:
    return [buttons[i:i + per_row] for i in range(0, len(buttons), per_row)]


def _prompt(session: dict, field, browse: dict | None) -> list[str]:
    label = _e(field.label)
    manual = session.get("pending_input") == field.key and supports_manual(field)
    if manual:
        return [f"✍️ Reply to this message with the {label.lower()} name."]
    if field.kind == KIND_TREE:
        lines = [f"Choose <b>{label}</b>:"]
        path = format_path(session.get(f"{field.key}_path") or [])
        if path and not (browse and browse.get("role") == field.key):
            lines.append(f"📍 {_e(path)}")
        return lines
    if field.key == AGENCY:
        return ["Is an agency required?" if field.kind == KIND_BOOLEAN else "Which agency?"]
    if field.kind in (KIND_CHOICE, KIND_BOOLEAN):
        return [f"Choose <b>{label}</b>:"]
    if field.kind == KIND_DATE:
        return [f"📅 Reply to this message with the {label.lower()} (YYYY-MM-DD)."]
    if field.kind == KIND_NUMBER:
        return [f"🔢 Reply to this message with {label.lower()} (a number)."]
    if field.kind == KIND_PHOTO:
        return [f"📷 Reply to this message with a photo for {label.lower()}."]
    return [f"✍️ Reply to this message with {label.lower()}."]


def _field_buttons(session: dict, field, browse: dict | None) -> list[list[dict]]:
    ref = session["bot_message_id"]
    if field.kind == KIND_TREE:
        parent_id, nodes = current_level(session, field.key, browse)
        rows = _rows([_button(n["name"], cb.encode(cb.SELECT, ref, field.key, n["id"])) for n in nodes])
        nav = []
        if parent_id is not None:
            nav.append(_button("⬅️ Back", cb.encode(cb.BACK, ref, field.key, parent_id)))
        if field.key == LOCATION:
            nav.append(_button("✍️ Type location", cb.encode(cb.TYPE, ref, field.key)))
        return rows + ([nav] if nav else [])

    rows = _rows([_button(c.label, cb.encode(cb.SELECT, ref, field.key, c.value))
                  for c in choices(session, field)])
    if field.key == CATEGORY:
        rows.append([_button("✍️ Type category", cb.encode(cb.TYPE, ref, field.key))])
    if expects_text(field):
        # без нажатия принимаем только ответ на это сообщение
        rows.append([_button("✍️ Type answer", cb.encode(cb.TYPE, ref, field.key))])
    if field.key == AGENCY_DATE:
        rows.append([_button("⏭ Skip date", cb.encode(cb.SKIP, ref, field.key))])
    return rows


def build_wizard_message(session: dict, notice: str | None = None, browse: dict | None = None) -> dict:
    """→ {"text": str, "options": [[{text, callback_data}]]}"""
    ref = session["bot_message_id"]
    statuses = field_statuses(session)
    done, total = progress(session)
    active = next((f for f, s in statuses if s == ACTIVE), None)

    issue = (session.get("original_text") or "").strip()
    if len(issue) > ISSUE_PREVIEW_LEN:
        issue = issue[:ISSUE_PREVIEW_LEN].rstrip() + "…"
    lines = [WIZARD_TITLE, f"📝 <i>{_e(issue) or EMPTY_VALUE}</i>"]

    completed = [f for f, s in statuses if s == COMPLETE]
    if completed:
        lines += ["", "✅ <b>Completed</b>"]
        lines += [f"• {_e(f.label)}: {_e(display_value(session, f.key))}" for f in completed]

    if active is not None:
        lines += ["", f"👉 <b>{_e(active.label)}</b>"] + _prompt(session, active, browse)
    else:
        lines += ["", "🎉 All set! Tap <b>Create Ticket</b> to submit."]

    remaining = [f for f, s in statuses if s == PENDING]
    if remaining:
        lines += ["", "⏹️ <b>Remaining</b>: " + ", ".join(_e(f.label) for f in remaining)]

    lines.append("")
    photos = session.get("photos") or []
    if photos:
        lines.append(f"📷 Photos: {len(photos)}")
    lines.append(f"📊 Progress: {done}/{total}")
    if notice:
        lines += ["", f"⚠️ {_e(notice)}"]

    options = _field_buttons(session, active, browse) if active is not None else []
    edits = [_button(f"✏️ {f.label}", cb.encode(cb.EDIT, ref, f.key)) for f in completed]
    options += _rows(edits)
    if active is None:
        options.append([_button("✅ Create Ticket", cb.encode(cb.SUBMIT, ref))])
    options.append([_button("❌ Cancel", cb.encode(cb.CANCEL, ref))])
    return {"text": "\n".join(lines), "options": options}


def build_confirmation(ticket_id: str, session: dict) -> str:
    """Отдельное постоянное сообщение после создания тикета."""
    lines = [f"✅ <b>Ticket {_e(ticket_id)} created</b>", ""]
    for field, status in field_statuses(session):
        if status == COMPLETE:
            lines.append(f"• {_e(field.label)}: {_e(display_value(session, field.key))}")
    photos = session.get("photos") or []
    if photos:
        lines.append(f"📷 Photos: {len(photos)}")
    return "\n".join(lines)
