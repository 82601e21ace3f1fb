from utils.env_loader import ensure_env_loaded
ensure_env_loaded()
import os, time, requests
from logger import logger

# PostgREST поверх Supabase: всё хранилище: обычные HTTP-запросы.
# Таблицы: wizard_sessions, tickets, categories, sub_categories, locations, workflow_rules


def _base_url() -> str:
    url = os.getenv("SUPABASE_URL")
    if not url:
        raise RuntimeError("SUPABASE_URL не задан")
    return f"{url.rstrip('/')}/rest/v1"


def _headers(prefer: str | None = None) -> dict:
    key = os.getenv("SUPABASE_API_KEY", "")
    headers = {
        "apikey": key,
        "Authorization": f"Bearer {key}",
        "Content-Type": "application/json",
    }
    if prefer:
        headers["Prefer"] = prefer
    return headers


def eq(value) -> str:
    """Фильтр PostgREST: col=eq.value (None → is.null)."""
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


def select(table: str, params: dict, retries: int = 3, delay_sec: float = 1.0) -> list[dict]:
    """GET с ретраями: чтения идемпотентны, повтор безопасен."""
    url = f"{_base_url()}/{table}"
    last_err = None
    for attempt in range(1, retries + 1):
        try:
            resp = requests.get(url, headers=_headers(), params=params, timeout=10)
            resp.raise_for_status()
            return resp.json() or []
        except requests.RequestException as e:
            last_err = e
            logger.warning(f"[supabase] select {table} attempt {attempt}/{retries} failed: {e}")
            if attempt < retries:
                time.sleep(delay_sec)
    raise last_err


def select_one(table: str, params: dict) -> dict | None:
    rows = select(table, {**params, "limit": 1})
    return rows[0] if rows else None


def insert(table: str, row: dict) -> dict:
    url = f"{_base_url()}/{table}"
    resp = requests.post(url, headers=_headers("return=representation"), json=row, timeout=10)
    if resp.status_code not in (200, 201):
        logger.error(f"[supabase] insert {table} failed: {resp.status_code} {resp.text}")
        resp.raise_for_status()
    data = resp.json()
    return data[0] if isinstance(data, list) and data else row


def update(table: str, filters: dict, patch: dict) -> list[dict]:
    """PATCH только переданных колонок: остальной документ не трогаем."""
    url = f"{_base_url()}/{table}"
    resp = requests.patch(url, headers=_headers("return=representation"),
                          params=filters, json=patch, timeout=10)
    resp.raise_for_status()
    return resp.json() or []


def delete(table: str, filters: dict) -> list[dict]:
    """DELETE … RETURNING: пустой список: строки уже не было."""
    url = f"{_base_url()}/{table}"
    resp = requests.delete(url, headers=_headers("return=representation"),
                           params=filters, timeout=10)
    resp.raise_for_status()
    return resp.json() or []
