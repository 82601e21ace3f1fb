# wizard/fields.py
"""
Общий интерфейс для всех видов полей:
  choices()      : варианты для кнопок (choice / boolean)
  apply_choice() : нажатая кнопка → patch сессии
  apply_text()   : присланный текст → patch сессии
  reset_patch()  : ✏️ «изменить»: вернуть поле в незаполненное состояние
Любое значение проверяется по домену поля; чужое → ValidationFailure, сессию не трогаем.
Деревья локаций живут в wizard.locations.
"""
from datetime import datetime
from typing import NamedTuple
from utils import masters
from utils.constants import (
    CATEGORY, PRIORITY, SUBCATEGORY, LOCATION, AGENCY, AGENCY_DATE,
    PRIORITIES, DATE_FORMAT,
)
from wizard.errors import ValidationFailure
from wizard.schema import (
    FieldDefinition, KIND_BOOLEAN, KIND_CHOICE, KIND_DATE, KIND_NUMBER, KIND_PHOTO,
    KIND_TEXT, KIND_TREE, TEXT_KINDS,
)

YES, NO = "yes", "no"
DATE_INPUT_FORMATS = (DATE_FORMAT, "%d.%m.%Y", "%d/%m/%Y", "%d-%m-%Y")


class Choice(NamedTuple):
    value: str
    label: str


def _with_icon(row: dict, name_key: str) -> str:
    name = row.get(name_key) or row.get("name") or ""
    return f"{row['icon']} {name}" if row.get("icon") else name


def _yes_no() -> list[Choice]:
    return [Choice(YES, "Yes"), Choice(NO, "No")]


def choices(session: dict, field: FieldDefinition) -> list[Choice]:
    if field.key == CATEGORY:
        return [Choice(str(c["id"]), _with_icon(c, "display_name")) for c in masters.list_categories()]
    if field.key == PRIORITY:
        return [Choice(k, v) for k, v in PRIORITIES.items()]
    if field.key == SUBCATEGORY:
        return [Choice(str(s["id"]), _with_icon(s, "name"))
                for s in masters.list_subcategories(session.get("category"))]
    if field.key == AGENCY and field.options:
        return [Choice(str(i), name) for i, name in enumerate(field.options)] + [Choice(NO, "No")]
    if field.kind == KIND_BOOLEAN:
        return _yes_no()
    if field.kind == KIND_CHOICE:
        return [Choice(str(i), opt) for i, opt in enumerate(field.options)]
    return []


def _extra_patch(session: dict, field: FieldDefinition, value) -> dict:
    values = dict(session.get("additional_field_values") or {})
    values[field.extra_key] = value
    return {"additional_field_values": values}


def _category_patch(category: dict) -> dict:
    return {
        "category": str(category["id"]),
        "category_display": category.get("display_name") or category.get("name"),
        # подкатегории у другой категории свои
        "sub_category_id": None,
        "sub_category_display": None,
    }


def apply_choice(session: dict, field: FieldDefinition, value: str) -> dict:
    domain = {c.value: c for c in choices(session, field)}
    if value not in domain:
        raise ValidationFailure("That option is not available anymore. Please choose again.")

    if field.key == CATEGORY:
        category = masters.get_category(value)
        if category is None:
            raise ValidationFailure("That category was just removed. Please choose another one.")
        if str(category["id"]) == str(session.get("category")):
            return {}
        return _category_patch(category)
    if field.key == PRIORITY:
        return {"priority": value}
    if field.key == SUBCATEGORY:
        sub = masters.get_subcategory(value)
        return {"sub_category_id": value, "sub_category_display": (sub or {}).get("name") or domain[value].label}
    if field.key == AGENCY:
        if value == NO:
            return {"agency_required": False, "agency_name": None,
                    "agency_date": None, "agency_date_skipped": False}
        name = None if value == YES else domain[value].label
        return {"agency_required": True, "agency_name": name}
    if field.kind == KIND_BOOLEAN:
        return _extra_patch(session, field, value == YES)
    return _extra_patch(session, field, domain[value].label)


def parse_date(text: str) -> str:
    raw = (text or "").strip()
    for fmt in DATE_INPUT_FORMATS:
        try:
            return datetime.strptime(raw, fmt).strftime(DATE_FORMAT)
        except ValueError:
            continue
    raise ValidationFailure(f"Couldn't read “{raw}” as a date. Please send it as YYYY-MM-DD, e.g. 2025-03-01.")


def parse_number(text: str):
    raw = (text or "").strip().replace(" ", "").replace(",", ".")
    try:
        number = float(raw)
    except ValueError:
        raise ValidationFailure(f"“{text.strip()}” is not a number. Please send digits only.") from None
    return int(number) if number.is_integer() else number


def expects_text(field: FieldDefinition) -> bool:
    return field.kind in TEXT_KINDS


def supports_manual(field: FieldDefinition) -> bool:
    """Поля с кнопкой «✍️ Type …»: категория и обычная локация."""
    return field.key in (CATEGORY, LOCATION)


def apply_text(session: dict, field: FieldDefinition, text: str) -> dict:
    raw = (text or "").strip()
    if not raw:
        raise ValidationFailure("Empty message. Please type a value.")

    if field.key == CATEGORY:
        category = masters.match_category(raw)
        if category is None:
            raise ValidationFailure(f"No category matches “{raw}”. Try another word or pick a button.")
        return _category_patch(category)
    if field.key == LOCATION:
        return {"custom_location": raw}
    if field.kind == KIND_TREE:
        raise ValidationFailure("Please pick the location with the buttons.")
    if field.key == AGENCY_DATE:
        return {"agency_date": parse_date(raw), "agency_date_skipped": False}
    if field.kind == KIND_DATE:
        return _extra_patch(session, field, parse_date(raw))
    if field.kind == KIND_NUMBER:
        return _extra_patch(session, field, parse_number(raw))
    if field.kind == KIND_TEXT:
        return _extra_patch(session, field, raw)
    if field.kind == KIND_PHOTO:
        raise ValidationFailure("Please reply to this message with a photo.")
    raise ValidationFailure("Please use the buttons for this field.")


def apply_photo(session: dict, field: FieldDefinition, url: str) -> dict:
    return _extra_patch(session, field, url)


def reset_patch(session: dict, field: FieldDefinition) -> dict:
    if field.key == CATEGORY:
        return {"category": None, "category_display": None,
                "sub_category_id": None, "sub_category_display": None}
    if field.key == PRIORITY:
        return {"priority": None}
    if field.key == SUBCATEGORY:
        return {"sub_category_id": None, "sub_category_display": None}
    if field.kind == KIND_TREE:
        # локацию выбираем заново от корня
        patch = {f"{field.key}_path": [], f"{field.key}_parent": None, f"{field.key}_complete": False}
        if field.key == LOCATION:
            patch["custom_location"] = None
        return patch
    if field.key == AGENCY:
        return {"agency_required": None, "agency_name": None,
                "agency_date": None, "agency_date_skipped": False}
    if field.key == AGENCY_DATE:
        return {"agency_date": None, "agency_date_skipped": False}
    values = dict(session.get("additional_field_values") or {})
    values.pop(field.extra_key, None)
    return {"additional_field_values": values}
