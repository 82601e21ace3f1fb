import copy, threading, time
from logger import logger
from utils import supabase_rest as db
from utils.constants import DEFAULT_SESSION_TTL_SEC, LOCATION_ROLES
from utils.env_flags import storage_backend, env_int

# Сессии мастера: один документ на одно сообщение бота (bot_message_id).
# На каждое событие документ перечитывается заново: в процессе ничего не кэшируем.
# Бэкенды:
#   memory  : словарь в процессе (LOCAL_DEV, тесты); наружу отдаём только копии
#   supabase: таблица wizard_sessions через PostgREST
TABLE = "wizard_sessions"

_sessions: dict[int, dict] = {}
_lock = threading.Lock()


def _ttl() -> int:
    return env_int("SESSION_TTL_SEC", DEFAULT_SESSION_TTL_SEC)


def _cutoff() -> float:
    return time.time() - _ttl()


def _expired(row: dict) -> bool:
    return float(row.get("created_at") or 0) < _cutoff()


def _memory() -> bool:
    return storage_backend() == "memory"


def new_session(chat_id, user_id, bot_message_id, original_text: str, *,
                original_message_id=None, category=None, category_display=None,
                photos=None) -> dict:
    """Пустая сессия со всеми ключами: дальше меняем только точечно."""
    session = {
        "bot_message_id": int(bot_message_id),
        "chat_id": chat_id,
        "user_id": user_id,
        "original_message_id": original_message_id,
        "original_text": original_text,
        "category": category,
        "category_display": category_display,
        "sub_category_id": None,
        "sub_category_display": None,
        "priority": None,
        "custom_location": None,
        "agency_required": None,
        "agency_name": None,
        "agency_date": None,            # 'YYYY-MM-DD'
        "agency_date_skipped": False,
        "additional_field_values": {},
        "pending_input": None,          # ключ поля, которое ждёт текст
        "input_requested": False,       # нажали «✍️ Type»: текст можно слать и не ответом
        "photos": list(photos or []),
        "videos": [],
        "current_step": None,
        "created_at": time.time(),
    }
    for role in LOCATION_ROLES:
        session[f"{role}_path"] = []
        session[f"{role}_parent"] = None
        session[f"{role}_complete"] = False
    return session


def create_session(session: dict) -> dict:
    ref = int(session["bot_message_id"])
    if _memory():
        with _lock:
            _sessions[ref] = copy.deepcopy(session)
        logger.info(f"[state] session {ref} created (memory)")
        return copy.deepcopy(session)
    row = db.insert(TABLE, session)
    logger.info(f"[state] session {ref} created")
    return row


def get_session(ref) -> dict | None:
    """Свежая копия сессии или None (нет / протухла / уже закрыта)."""
    ref = int(ref)
    if _memory():
        with _lock:
            row = _sessions.get(ref)
            if row is None:
                return None
            if _expired(row):
                # пассивная чистка: протухшая сессия для всех выглядит как отсутствующая
                _sessions.pop(ref, None)
                logger.info(f"[state] session {ref} expired")
                return None
            return copy.deepcopy(row)
    return db.select_one(TABLE, {
        "bot_message_id": db.eq(ref),
        "created_at": f"gte.{_cutoff()}",
    })


def update_session(ref, patch: dict) -> dict | None:
    """
    Точечное обновление: пишем только ключи из patch.
    Два почти одновременных клика теряют максимум одно поле, а не весь документ.
    """
    ref = int(ref)
    if not patch:
        return get_session(ref)
    if _memory():
        with _lock:
            row = _sessions.get(ref)
            if row is None or _expired(row):
                return None
            for k, v in patch.items():
                row[k] = copy.deepcopy(v)
            return copy.deepcopy(row)
    rows = db.update(TABLE, {"bot_message_id": db.eq(ref)}, patch)
    return rows[0] if rows else None


def delete_session(ref) -> dict | None:
    """
    Условное удаление: строку получает только тот, кто её реально удалил.
    Для submit это и есть «захват»: второй параллельный submit получит None.
    """
    ref = int(ref)
    if _memory():
        with _lock:
            row = _sessions.pop(ref, None)
        if row is not None:
            logger.info(f"[state] session {ref} deleted (memory)")
        return row
    rows = db.delete(TABLE, {"bot_message_id": db.eq(ref)})
    if rows:
        logger.info(f"[state] session {ref} deleted")
    return rows[0] if rows else None


def restore_session(row: dict) -> None:
    """Вернуть захваченную сессию, если тикет так и не создался."""
    logger.warning(f"[state] restoring session {row.get('bot_message_id')}")
    create_session(row)


def find_pending_session(chat_id, user_id) -> dict | None:
    """Самая свежая живая сессия пользователя в чате, где он сам нажал «✍️ Type»."""
    if _memory():
        with _lock:
            rows = [
                r for r in _sessions.values()
                if r.get("chat_id") == chat_id and r.get("user_id") == user_id
                and r.get("pending_input") and r.get("input_requested") and not _expired(r)
            ]
            if not rows:
                return None
            return copy.deepcopy(max(rows, key=lambda r: r.get("created_at") or 0))
    rows = db.select(TABLE, {
        "chat_id": db.eq(chat_id),
        "user_id": db.eq(user_id),
        "pending_input": "not.is.null",
        "input_requested": db.eq(True),
        "created_at": f"gte.{_cutoff()}",
        "order": "created_at.desc",
        "limit": 1,
    })
    return rows[0] if rows else None


def purge_expired() -> int:
    """Удаляет брошенные сессии старше TTL. Возвращает количество."""
    if _memory():
        with _lock:
            stale = [ref for ref, r in _sessions.items() if _expired(r)]
            for ref in stale:
                _sessions.pop(ref, None)
        removed = len(stale)
    else:
        removed = len(db.delete(TABLE, {"created_at": f"lt.{_cutoff()}"}))
    if removed:
        logger.info(f"🗑 [state] purged {removed} expired wizard sessions")
    return removed


def clear_all() -> None:
    """Только для memory-бэкенда (тесты, #reset в LOCAL_DEV)."""
    with _lock:
        _sessions.clear()
