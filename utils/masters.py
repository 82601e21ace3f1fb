from utils.env_loader import ensure_env_loaded
ensure_env_loaded()
import json, os
from pathlib import Path
from logger import logger
from utils import supabase_rest as db
from utils.env_flags import storage_backend

# Справочники (категории, подкатегории, дерево локаций, WorkflowRule) ведёт админка.
# Мастер их только читает и ничего не кэширует: каждый шаг: свежий запрос.
# memory-режим читает JSON-сид (MASTERS_FILE) или данные, подложенные тестами.

RULE_DEFAULTS = {
    "has_subcategories": False,
    "requires_location": False,
    "requires_source_location": False,
    "requires_target_location": False,
    "requires_agency": False,
    "agency_type": "boolean",       # boolean = Yes/No, name = выбор из agency_list
    "agency_list": [],
    "requires_agency_date": False,
    "additional_fields": [],        # [{key, label, type, options?}]
}

_injected: dict | None = None


def use_local(data: dict | None) -> None:
    """Подложить справочники в память (тесты). None: снова читать MASTERS_FILE."""
    global _injected
    _injected = data


def _local_rows(table: str) -> list[dict]:
    if _injected is not None:
        return list(_injected.get(table, []))
    path = Path(os.getenv("MASTERS_FILE", "data/masters.json"))
    if not path.exists():
        logger.warning(f"[masters] {path} не найден: справочники пустые")
        return []
    with open(path, "r", encoding="utf-8") as f:
        return list(json.load(f).get(table, []))


def _remote() -> bool:
    return storage_backend() == "supabase"


def _sid(value) -> str | None:
    return None if value is None else str(value)


def _active(row: dict) -> bool:
    return row.get("is_active", True) is not False


def _node(row: dict | None) -> dict | None:
    if not row:
        return None
    return {
        "id": _sid(row.get("id")),
        "name": row.get("name") or "",
        "parent_location_id": _sid(row.get("parent_location_id")),
    }


# ─── WorkflowRule ───────────────────────────────────────────────
def get_rule_for_category(category_id) -> dict | None:
    if not category_id:
        return None
    if _remote():
        row = db.select_one("workflow_rules", {"category_id": db.eq(category_id)})
    else:
        row = next((r for r in _local_rows("workflow_rules")
                    if _sid(r.get("category_id")) == _sid(category_id)), None)
    if row is None:
        return None
    rule = {**RULE_DEFAULTS, **{k: v for k, v in row.items() if v is not None}}
    rule["additional_fields"] = [dict(f) for f in rule.get("additional_fields") or []]
    return rule


# ─── дерево локаций ─────────────────────────────────────────────
def get_children(parent_id) -> list[dict]:
    """Активные дочерние узлы по имени; parent_id=None: корни леса."""
    if _remote():
        rows = db.select("locations", {
            "parent_location_id": db.eq(parent_id),
            "is_active": "eq.true",
            "order": "name.asc",
        })
    else:
        rows = [r for r in _local_rows("locations")
                if _sid(r.get("parent_location_id")) == _sid(parent_id) and _active(r)]
        rows.sort(key=lambda r: (r.get("name") or "").lower())
    return [_node(r) for r in rows]


def get_node(location_id) -> dict | None:
    if not location_id:
        return None
    if _remote():
        row = db.select_one("locations", {"id": db.eq(location_id), "is_active": "eq.true"})
    else:
        row = next((r for r in _local_rows("locations")
                    if _sid(r.get("id")) == _sid(location_id) and _active(r)), None)
    return _node(row)


def count_children(location_id) -> int:
    return len(get_children(location_id))


# ─── категории / подкатегории ───────────────────────────────────
def list_categories() -> list[dict]:
    if _remote():
        return db.select("categories", {"is_active": "eq.true",
                                        "order": "priority.desc,display_name.asc"})
    rows = [r for r in _local_rows("categories") if _active(r)]
    rows.sort(key=lambda r: (-(r.get("priority") or 0), (r.get("display_name") or "").lower()))
    return rows


def get_category(category_id) -> dict | None:
    if not category_id:
        return None
    if _remote():
        return db.select_one("categories", {"id": db.eq(category_id), "is_active": "eq.true"})
    return next((r for r in _local_rows("categories")
                 if _sid(r.get("id")) == _sid(category_id) and _active(r)), None)


def list_subcategories(category_id) -> list[dict]:
    if not category_id:
        return []
    if _remote():
        return db.select("sub_categories", {"category_id": db.eq(category_id),
                                            "is_active": "eq.true", "order": "name.asc"})
    rows = [r for r in _local_rows("sub_categories")
            if _sid(r.get("category_id")) == _sid(category_id) and _active(r)]
    rows.sort(key=lambda r: (r.get("name") or "").lower())
    return rows


def get_subcategory(sub_category_id) -> dict | None:
    if not sub_category_id:
        return None
    if _remote():
        return db.select_one("sub_categories", {"id": db.eq(sub_category_id), "is_active": "eq.true"})
    return next((r for r in _local_rows("sub_categories")
                 if _sid(r.get("id")) == _sid(sub_category_id) and _active(r)), None)


def detect_category(text: str) -> dict | None:
    """Автоопределение по ключевым словам категории (первое совпадение)."""
    low = (text or "").lower()
    if not low:
        return None
    for cat in list_categories():
        if any(kw and kw.lower() in low for kw in cat.get("keywords") or []):
            return cat
    return None


def match_category(text: str) -> dict | None:
    """Ручной ввод категории: точное имя → отображаемое имя → ключевые слова."""
    low = (text or "").strip().lower()
    if not low:
        return None
    for cat in list_categories():
        if low in {(cat.get("name") or "").lower(), (cat.get("display_name") or "").lower()}:
            return cat
    return detect_category(low)
