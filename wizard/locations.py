# wizard/locations.py
"""
Навигация по дереву локаций (лес: parent_location_id = None у корней).

Для каждой роли (location / source_location / target_location) в сессии лежат:
  <role>_path    : [{id, name}] от корня к текущему узлу
  <role>_parent  : узел, чьих детей сейчас показываем (None: корни)
  <role>_complete: выбран лист
«Назад» только листает меню уровнем выше и ничего не записывает.
"""
from logger import logger
from utils import masters
from utils.constants import LOCATION, ROOT_SENTINEL
from wizard.errors import NotFound


def _ancestors(node: dict) -> list[dict]:
    """Путь от корня до родителя узла, по дереву (когда в сохранённом пути родителя нет)."""
    chain, seen = [], {node["id"]}
    parent_id = node.get("parent_location_id")
    while parent_id and parent_id not in seen:
        parent = masters.get_node(parent_id)
        if parent is None:
            break
        seen.add(parent_id)
        chain.append({"id": parent["id"], "name": parent["name"]})
        parent_id = parent.get("parent_location_id")
    return list(reversed(chain))


def _path_to_parent(path: list[dict], node: dict) -> list[dict]:
    parent_id = node.get("parent_location_id")
    if parent_id is None:
        return []
    for i in range(len(path) - 1, -1, -1):
        if str(path[i].get("id")) == parent_id:
            return list(path[: i + 1])
    return _ancestors(node)


def append_node(path: list[dict], node: dict) -> list[dict]:
    """Добавить узел в конец пути; подряд два одинаковых id не бывает."""
    entry = {"id": node["id"], "name": node["name"]}
    if path and str(path[-1].get("id")) == entry["id"]:
        return list(path)
    return list(path) + [entry]


def select_location(session: dict, role: str, node_id) -> tuple[dict, bool]:
    """
    Выбор узла → (patch, is_leaf).
    Есть дети: запоминаем путь и уровень, шаг мастера не двигается.
    Лист: в том же patch ставим <role>_complete = True.
    """
    node = masters.get_node(node_id)
    if node is None:
        logger.info(f"[locations] node {node_id} not found ({role})")
        raise NotFound("This location is not available anymore. Please choose again.")

    path = append_node(_path_to_parent(session.get(f"{role}_path") or [], node), node)
    is_leaf = masters.count_children(node["id"]) == 0
    patch = {f"{role}_path": path}
    if is_leaf:
        patch[f"{role}_complete"] = True
    else:
        patch[f"{role}_parent"] = node["id"]
        patch[f"{role}_complete"] = False
    if role == LOCATION:
        patch["custom_location"] = None
    return patch, is_leaf


def browse_back(role: str, ref: str) -> dict:
    """Меню уровня, на котором стоит узел ref (или корни для root)."""
    if not ref or ref == ROOT_SENTINEL:
        return {"role": role, "parent_id": None}
    node = masters.get_node(ref)
    if node is None:
        return {"role": role, "parent_id": None}
    return {"role": role, "parent_id": node.get("parent_location_id")}


def current_level(session: dict, role: str, browse: dict | None = None) -> tuple[str | None, list[dict]]:
    """(parent_id, дети): что показать в меню роли сейчас."""
    if browse and browse.get("role") == role:
        parent_id = browse.get("parent_id")
    else:
        parent_id = session.get(f"{role}_parent")
    children = masters.get_children(parent_id)
    if parent_id is not None and not children:
        # узел удалили или у него больше нет детей: начинаем от корня
        return None, masters.get_children(None)
    return parent_id, children
