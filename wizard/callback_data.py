# wizard/callback_data.py
"""
callback_data кнопок: <action>:<ref>:<code>:<value>
  ref  : id сообщения мастера (ключ сессии)
  code : короткий код поля (cat, pri, loc, f.<key> …)
  value: значение; для списков из админки: индекс варианта
Telegram принимает не больше 64 байт, поэтому коды короткие.
"""
from typing import NamedTuple
from logger import logger
from utils.constants import FIELD_CODES, EXTRA_CODE_PREFIX, FIELD_PREFIX

SELECT = "sel"
BACK   = "back"
TYPE   = "type"
EDIT   = "edit"
SKIP   = "skip"
SUBMIT = "submit"
CANCEL = "cancel"

ACTIONS = {SELECT, BACK, TYPE, EDIT, SKIP, SUBMIT, CANCEL}
MAX_BYTES = 64

_KEYS_BY_CODE = {code: key for key, code in FIELD_CODES.items()}


class Token(NamedTuple):
    action: str
    ref: int
    field_key: str = ""
    value: str = ""


def field_code(key: str) -> str:
    if key in FIELD_CODES:
        return FIELD_CODES[key]
    if key.startswith(FIELD_PREFIX):
        return f"{EXTRA_CODE_PREFIX}{key[len(FIELD_PREFIX):]}"
    return key


def field_key(code: str) -> str:
    if code in _KEYS_BY_CODE:
        return _KEYS_BY_CODE[code]
    if code.startswith(EXTRA_CODE_PREFIX):
        return f"{FIELD_PREFIX}{code[len(EXTRA_CODE_PREFIX):]}"
    return code


def encode(action: str, ref, key: str = "", value="") -> str:
    data = f"{action}:{int(ref)}:{field_code(key) if key else ''}:{'' if value is None else value}"
    if len(data.encode("utf-8")) > MAX_BYTES:
        logger.warning(f"[callback] callback_data длиннее {MAX_BYTES} байт: {data!r}")
    return data


def decode(data: str) -> Token:
    """ValueError: если строка не наш токен."""
    parts = (data or "").split(":", 3)
    if len(parts) != 4 or parts[0] not in ACTIONS:
        raise ValueError(f"bad callback_data: {data!r}")
    action, ref, code, value = parts
    try:
        ref = int(ref)
    except ValueError:
        raise ValueError(f"bad session ref in callback_data: {data!r}") from None
    return Token(action, ref, field_key(code) if code else "", value)
