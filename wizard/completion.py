# wizard/completion.py
from utils.constants import (
    CATEGORY, PRIORITY, SUBCATEGORY, LOCATION, SOURCE_LOCATION, TARGET_LOCATION,
    AGENCY, AGENCY_DATE, FIELD_PREFIX,
)


def _filled(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, dict)):
        return bool(value)
    return True


def agency_declined(session: dict) -> bool:
    """agency = No или дату агентства явно пропустили: для завершённости одно и то же."""
    return session.get("agency_required") is False or bool(session.get("agency_date_skipped"))


def is_field_complete(session: dict, key: str) -> bool:
    """
    Заполнено ли поле. Чистая функция, без I/O.
    «No»: это ответ: незаполненным считается только то, на что ещё не ответили.
    """
    if key == CATEGORY:
        return _filled(session.get("category"))
    if key == PRIORITY:
        return _filled(session.get("priority"))
    if key == SUBCATEGORY:
        return _filled(session.get("sub_category_id"))
    if key == LOCATION:
        return _filled(session.get("custom_location")) or bool(session.get("location_complete"))
    if key in (SOURCE_LOCATION, TARGET_LOCATION):
        return bool(session.get(f"{key}_complete"))
    if key == AGENCY:
        return session.get("agency_required") is not None
    if key == AGENCY_DATE:
        if agency_declined(session):
            return True
        return _filled(session.get("agency_date"))
    if key.startswith(FIELD_PREFIX):
        values = session.get("additional_field_values") or {}
        return _filled(values.get(key[len(FIELD_PREFIX):]))
    return False
