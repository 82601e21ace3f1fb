# wizard/resolver.py
"""
Поиск следующего шага: идём по схеме по порядку и берём первое поле,
которое не заполнено, у которого выполнены зависимости и которое не подавлено.
"""
from utils.constants import AGENCY_DATE
from wizard.completion import agency_declined, is_field_complete
from wizard.schema import FieldDefinition, get_required_fields

COMPLETE = "complete"
ACTIVE = "active"
PENDING = "pending"
SUPPRESSED = "suppressed"


def schema_for(session: dict) -> list[FieldDefinition]:
    return get_required_fields(session.get("category"))


def is_suppressed(session: dict, field: FieldDefinition) -> bool:
    # agency_date исключается целиком, как только agency = No, что бы ни лежало в дате
    return field.key == AGENCY_DATE and agency_declined(session)


def dependencies_met(session: dict, field: FieldDefinition) -> bool:
    return all(is_field_complete(session, dep) for dep in field.depends_on)


def get_active_field(session: dict, fields: list[FieldDefinition] | None = None) -> FieldDefinition | None:
    for field in fields if fields is not None else schema_for(session):
        if is_field_complete(session, field.key):
            continue
        if is_suppressed(session, field) or not dependencies_met(session, field):
            continue
        return field
    return None


def get_next_incomplete_field(session: dict) -> str | None:
    field = get_active_field(session)
    return field.key if field else None


def can_submit(session: dict) -> bool:
    return get_next_incomplete_field(session) is None


def field_statuses(session: dict, fields: list[FieldDefinition] | None = None) -> list[tuple[FieldDefinition, str]]:
    """[(поле, complete|active|pending|suppressed)] в порядке схемы."""
    fields = fields if fields is not None else schema_for(session)
    active = get_active_field(session, fields)
    out = []
    for field in fields:
        if is_suppressed(session, field):
            out.append((field, SUPPRESSED))
        elif is_field_complete(session, field.key):
            out.append((field, COMPLETE))
        elif active is not None and field.key == active.key:
            out.append((field, ACTIVE))
        else:
            out.append((field, PENDING))
    return out


def progress(session: dict, fields: list[FieldDefinition] | None = None) -> tuple[int, int]:
    """(заполнено, всего) без подавленных полей."""
    statuses = [s for _, s in field_statuses(session, fields) if s != SUPPRESSED]
    return sum(1 for s in statuses if s == COMPLETE), len(statuses)
