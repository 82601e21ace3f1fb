import os


def is_local_dev() -> bool:
    val = str(os.getenv("LOCAL_DEV", "")).strip().lower()
    return val in {"1", "true", "yes"}


def storage_backend() -> str:
    """memory | supabase. Читаем при каждом вызове: тесты переключают ENV на лету."""
    val = str(os.getenv("STORAGE_BACKEND", "")).strip().lower()
    if val in {"memory", "supabase"}:
        return val
    return "memory" if is_local_dev() else "supabase"


def env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default
