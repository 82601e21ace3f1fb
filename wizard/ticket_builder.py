# wizard/ticket_builder.py
from logger import logger
from utils import tickets
from utils.constants import (
    CATEGORY, PRIORITY, SUBCATEGORY, SOURCE_LOCATION, TARGET_LOCATION, LOCATION_ROLES,
    AGENCY, AGENCY_DATE,
)
from wizard.display import display_value, flat_location, format_date, dedup_path
from wizard.errors import SubmitBlocked
from wizard.resolver import COMPLETE, field_statuses, get_next_incomplete_field


def ticket_fields(session: dict, created_by) -> dict:
    """
    Сессия → поля тикета; форматирование то же, что в сообщении мастера.
    Берём только поля текущей схемы со статусом COMPLETE: после смены категории
    в сессии остаются значения старой схемы, в тикет они не попадают.
    """
    completed = [f for f, s in field_statuses(session) if s == COMPLETE]
    complete = {f.key for f in completed}
    roles = [role for role in LOCATION_ROLES if role in complete]
    agency = AGENCY in complete and session.get("agency_required") is True
    values = session.get("additional_field_values") or {}

    fields = {
        "description": (session.get("original_text") or "").strip(),
        "category": session.get("category"),
        "category_display": display_value(session, CATEGORY) if CATEGORY in complete else None,
        "sub_category_id": session.get("sub_category_id") if SUBCATEGORY in complete else None,
        "sub_category": display_value(session, SUBCATEGORY) if SUBCATEGORY in complete else None,
        "priority": session.get("priority") if PRIORITY in complete else None,
        "location": flat_location(session, roles),
        "source_location": display_value(session, SOURCE_LOCATION) if SOURCE_LOCATION in complete else None,
        "target_location": display_value(session, TARGET_LOCATION) if TARGET_LOCATION in complete else None,
        "agency_required": agency,
        "agency_name": (session.get("agency_name") or "Yes") if agency else None,
        "agency_date": (format_date(session.get("agency_date"))
                        if agency and AGENCY_DATE in complete and session.get("agency_date") else None),
        "additional_fields": {f.extra_key: values[f.extra_key]
                              for f in completed if f.extra_key and f.extra_key in values},
        "photos": list(session.get("photos") or []),
        "videos": list(session.get("videos") or []),
        "created_by": created_by,
        "telegram_chat_id": session.get("chat_id"),
        "original_message_id": session.get("original_message_id"),
        # путь целиком: для карты здания и отчётов по локациям
        "location_paths": {
            role: dedup_path(session.get(f"{role}_path") or [])
            for role in roles if session.get(f"{role}_path")
        },
    }
    return fields


def create_ticket_from_wizard(session: dict, created_by) -> dict:
    """Единственные ворота в тикеты: с незаполненными полями тикет не создаётся."""
    missing = get_next_incomplete_field(session)
    if missing is not None:
        logger.info(f"[ticket] submit blocked for {session.get('bot_message_id')}: {missing} missing")
        raise SubmitBlocked("Some required fields are still missing.", missing=missing)
    fields = ticket_fields(session, created_by)
    ticket_id = tickets.create_ticket(fields)
    return {**fields, "ticket_id": ticket_id}
