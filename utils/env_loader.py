from dotenv import load_dotenv, find_dotenv
from pathlib import Path
import os

__ENV_LOADED = False
def ensure_env_loaded():
    """
    Грузит .env один раз на процесс.
    Порядок поиска:
      1) явный путь из ENV_FILE (удобно для gunicorn на сервере)
      2) find_dotenv() от текущей CWD
      3) <корень репозитория>/.env
    override=False: переменные ОС и pytest (monkeypatch.setenv) важнее .env.
    """
    global __ENV_LOADED
    if __ENV_LOADED:
        return
    path = os.getenv("ENV_FILE") or find_dotenv(usecwd=True)
    if not path:
        candidate = Path(__file__).resolve().parents[1] / ".env"   # utils/ → корень
        if candidate.exists():
            path = str(candidate)
    load_dotenv(path or None, override=False)
    os.environ.setdefault("_ENV_DEBUG_PATH", path or "")
    __ENV_LOADED = True
