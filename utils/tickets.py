import copy, re, threading
import requests
from datetime import datetime, timezone
from logger import logger
from utils import supabase_rest as db
from utils.constants import TICKET_ID_PREFIX
from utils.env_flags import storage_backend

# Приёмник тикетов. Сам тикет-сервис (статусы, закрытие, дашборд) живёт отдельно,
# отсюда только create + пометка, каким сообщением подтвердили создание.
TABLE = "tickets"
ID_CONFLICT_RETRIES = 5

_tickets: list[dict] = []
_lock = threading.Lock()
_ID_RE = re.compile(rf"{re.escape(TICKET_ID_PREFIX)}(\d+)")


def _memory() -> bool:
    return storage_backend() == "memory"


def _format_id(number: int) -> str:
    return f"{TICKET_ID_PREFIX}{number:03d}"


def _last_ticket_id() -> str | None:
    if _memory():
        return _tickets[-1]["ticket_id"] if _tickets else None
    row = db.select_one(TABLE, {"select": "ticket_id", "order": "created_at.desc"})
    return row.get("ticket_id") if row else None


def next_ticket_id() -> str:
    """TCK-001, TCK-002 …: продолжаем от последнего сохранённого тикета."""
    last = _last_ticket_id()
    m = _ID_RE.search(last or "")
    return _format_id(int(m.group(1)) + 1 if m else 1)


def _insert_with_fresh_id(row: dict, attempts: int = ID_CONFLICT_RETRIES) -> None:
    """
    Номер считаем от последнего тикета, поэтому два параллельных submit могут взять один.
    ticket_id в таблице UNIQUE: проигравший получает 409 и берёт следующий номер.
    """
    for attempt in range(1, attempts + 1):
        row["ticket_id"] = next_ticket_id()
        try:
            db.insert(TABLE, row)
            return
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status != 409 or attempt == attempts:
                raise
            logger.warning(f"[tickets] {row['ticket_id']} уже занят, попытка {attempt}/{attempts}")


def create_ticket(fields: dict) -> str:
    row = {
        **fields,
        "status": "PENDING",
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    if _memory():
        with _lock:
            # номер берём под тем же lock, что и вставку
            row["ticket_id"] = next_ticket_id()
            _tickets.append(copy.deepcopy(row))
    else:
        _insert_with_fresh_id(row)
    logger.info(f"🎫 [tickets] {row['ticket_id']} created by {row.get('created_by')}")
    return row["ticket_id"]


def attach_confirmation(ticket_id: str, chat_id, message_id) -> None:
    patch = {"telegram_chat_id": chat_id, "telegram_message_id": message_id}
    if _memory():
        with _lock:
            for t in _tickets:
                if t["ticket_id"] == ticket_id:
                    t.update(patch)
        return
    db.update(TABLE, {"ticket_id": db.eq(ticket_id)}, patch)


def get_ticket(ticket_id: str) -> dict | None:
    if _memory():
        with _lock:
            found = next((t for t in _tickets if t["ticket_id"] == ticket_id), None)
            return copy.deepcopy(found)
    return db.select_one(TABLE, {"ticket_id": db.eq(ticket_id)})


def list_tickets() -> list[dict]:
    """Только memory: для LOCAL_DEV и тестов."""
    with _lock:
        return copy.deepcopy(_tickets)


def clear_all() -> None:
    with _lock:
        _tickets.clear()
