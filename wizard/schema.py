# wizard/schema.py
"""
Схема мастера: упорядоченный список полей, который нужно собрать для категории.

Схема выводится из WorkflowRule на каждом обращении и нигде не хранится:
админ поменял правило: следующий же клик живёт по новому правилу.
Порядок полей задаёт и порядок показа, для одного и того же правила он всегда один.
"""
from dataclasses import dataclass, field as dc_field
from utils import masters
from utils.constants import (
    CATEGORY, PRIORITY, SUBCATEGORY, LOCATION, SOURCE_LOCATION, TARGET_LOCATION,
    AGENCY, AGENCY_DATE, FIELD_PREFIX, LABELS,
)

# ─── виды полей ────────────────────────────────────────────────
KIND_CHOICE  = "choice"      # перечислимый выбор (кнопки)
KIND_BOOLEAN = "boolean"     # Yes / No
KIND_DATE    = "date"        # текст → календарная дата
KIND_TEXT    = "text"        # свободный текст
KIND_NUMBER  = "number"      # текст → число
KIND_TREE    = "tree"        # навигация по дереву локаций
KIND_PHOTO   = "photo"       # фото ответом на сообщение мастера

TEXT_KINDS = {KIND_DATE, KIND_TEXT, KIND_NUMBER}

# type из additional_fields → вид поля
EXTRA_KINDS = {
    "select":  KIND_CHOICE,
    "choice":  KIND_CHOICE,
    "boolean": KIND_BOOLEAN,
    "text":    KIND_TEXT,
    "number":  KIND_NUMBER,
    "date":    KIND_DATE,
    "photo":   KIND_PHOTO,
}

BASE_DEPS = (CATEGORY, PRIORITY)


@dataclass(frozen=True)
class FieldDefinition:
    key: str
    label: str
    kind: str
    depends_on: tuple = ()
    required: bool = True
    options: tuple = ()          # статичные варианты: select из правила, агентства по имени
    meta: dict = dc_field(default_factory=dict, compare=False, hash=False)

    @property
    def extra_key(self) -> str | None:
        """field_<key> → <key>; для встроенных полей None."""
        if self.key.startswith(FIELD_PREFIX):
            return self.key[len(FIELD_PREFIX):]
        return None

    @property
    def is_location(self) -> bool:
        return self.kind == KIND_TREE


def _builtin(key: str, kind: str, depends_on=(), **kw) -> FieldDefinition:
    return FieldDefinition(key=key, label=LABELS[key], kind=kind, depends_on=tuple(depends_on), **kw)


def _agency_field(rule: dict) -> FieldDefinition:
    names = tuple(str(n) for n in rule.get("agency_list") or [] if str(n).strip())
    if rule.get("agency_type") == "name" and names:
        # агентства по имени: список из правила + «No»
        return _builtin(AGENCY, KIND_CHOICE, BASE_DEPS, options=names, meta={"by_name": True})
    return _builtin(AGENCY, KIND_BOOLEAN, BASE_DEPS)


def _extra_field(spec: dict) -> FieldDefinition | None:
    key = str(spec.get("key") or "").strip()
    if not key:
        return None
    kind = EXTRA_KINDS.get(str(spec.get("type") or "text").lower(), KIND_TEXT)
    options = tuple(str(o) for o in spec.get("options") or [])
    if kind == KIND_CHOICE and not options:
        # select без вариантов: спрашиваем текстом, иначе поле не заполнить
        kind = KIND_TEXT
    return FieldDefinition(
        key=f"{FIELD_PREFIX}{key}",
        label=spec.get("label") or key,
        kind=kind,
        depends_on=BASE_DEPS,
        options=options,
        meta={"type": spec.get("type") or "text"},
    )


def get_required_fields(category_id) -> list[FieldDefinition]:
    fields = [
        _builtin(CATEGORY, KIND_CHOICE),
        _builtin(PRIORITY, KIND_CHOICE, (CATEGORY,)),
    ]
    if not category_id:
        return fields

    rule = masters.get_rule_for_category(category_id)
    if rule is None:
        # правила нет (или удалили посреди мастера): по умолчанию только локация
        fields.append(_builtin(LOCATION, KIND_TREE, BASE_DEPS))
        return fields

    if rule.get("has_subcategories"):
        fields.append(_builtin(SUBCATEGORY, KIND_CHOICE, BASE_DEPS))

    # source/target важнее обычной локации
    if rule.get("requires_source_location") or rule.get("requires_target_location"):
        if rule.get("requires_source_location"):
            fields.append(_builtin(SOURCE_LOCATION, KIND_TREE, BASE_DEPS))
        if rule.get("requires_target_location"):
            fields.append(_builtin(TARGET_LOCATION, KIND_TREE, BASE_DEPS))
    elif rule.get("requires_location"):
        fields.append(_builtin(LOCATION, KIND_TREE, BASE_DEPS))

    if rule.get("requires_agency"):
        fields.append(_agency_field(rule))
        if rule.get("requires_agency_date"):
            fields.append(_builtin(AGENCY_DATE, KIND_DATE, (AGENCY,)))

    for spec in rule.get("additional_fields") or []:
        extra = _extra_field(spec)
        if extra is not None:
            fields.append(extra)
    return fields


def find_field(fields: list[FieldDefinition], key: str) -> FieldDefinition | None:
    return next((f for f in fields if f.key == key), None)
