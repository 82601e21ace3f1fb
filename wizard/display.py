# wizard/display.py
"""Человекочитаемые значения полей: одно форматирование и для сообщения мастера, и для тикета."""
from datetime import date, datetime
from utils.constants import (
    CATEGORY, PRIORITY, SUBCATEGORY, LOCATION, SOURCE_LOCATION, TARGET_LOCATION,
    AGENCY, AGENCY_DATE, FIELD_PREFIX, PATH_SEPARATOR, DATE_FORMAT, EMPTY_VALUE,
)


def dedup_path(path: list[dict]) -> list[dict]:
    """Убираем подряд идущие одинаковые id (старые сессии могли их накопить)."""
    out = []
    for node in path or []:
        if out and str(out[-1].get("id")) == str(node.get("id")):
            continue
        out.append(node)
    return out


def format_path(path: list[dict]) -> str:
    names = [n.get("name") or "" for n in dedup_path(path)]
    return PATH_SEPARATOR.join(n for n in names if n)


def format_date(value) -> str:
    if not value:
        return EMPTY_VALUE
    if isinstance(value, (date, datetime)):
        return value.strftime(DATE_FORMAT)
    text = str(value)
    try:
        return datetime.fromisoformat(text).strftime(DATE_FORMAT)
    except ValueError:
        return text


def yes_no(value) -> str:
    if value is None:
        return EMPTY_VALUE
    return "Yes" if value else "No"


def location_value(session: dict, role: str) -> str:
    if role == LOCATION and session.get("custom_location"):
        return session["custom_location"]
    return format_path(session.get(f"{role}_path") or []) or EMPTY_VALUE


def agency_value(session: dict) -> str:
    if session.get("agency_required") is None:
        return EMPTY_VALUE
    if session.get("agency_required") is False:
        return "No"
    return session.get("agency_name") or "Yes"


def display_value(session: dict, key: str) -> str:
    if key == CATEGORY:
        return session.get("category_display") or session.get("category") or EMPTY_VALUE
    if key == PRIORITY:
        return (session.get("priority") or EMPTY_VALUE).upper()
    if key == SUBCATEGORY:
        return session.get("sub_category_display") or session.get("sub_category_id") or EMPTY_VALUE
    if key in (LOCATION, SOURCE_LOCATION, TARGET_LOCATION):
        return location_value(session, key)
    if key == AGENCY:
        return agency_value(session)
    if key == AGENCY_DATE:
        return format_date(session.get("agency_date"))
    if key.startswith(FIELD_PREFIX):
        value = (session.get("additional_field_values") or {}).get(key[len(FIELD_PREFIX):])
        if isinstance(value, bool):
            return yes_no(value)
        return EMPTY_VALUE if value in (None, "") else str(value)
    return EMPTY_VALUE


def flat_location(session: dict, roles) -> str:
    """Одна строка локации для тикета: обычная локация или «From: … | To: …».

    roles: заполненные роли локации из текущей схемы; остатки от прежней категории не берём.
    """
    parts = [f"{prefix}: {location_value(session, role)}"
             for role, prefix in ((SOURCE_LOCATION, "From"), (TARGET_LOCATION, "To"))
             if role in roles]
    if parts:
        return " | ".join(parts)
    if LOCATION in roles:
        return location_value(session, LOCATION)
    return ""
