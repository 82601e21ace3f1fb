# logger.py  – один логгер "bot" на весь сервис
import os, sys, logging
from logging.handlers import TimedRotatingFileHandler
from concurrent_log_handler import ConcurrentTimedRotatingFileHandler
from utils.env_flags import is_local_dev

# --- 1. выбираем тип файлового хендлера ---------------------------
# gunicorn + gevent пишут в один файл из нескольких воркеров → нужен
# межпроцессный lock. Локально и на Windows хватает стандартного.
USE_SIMPLE = sys.platform.startswith("win") or is_local_dev()
RotatingFileHandler = TimedRotatingFileHandler if USE_SIMPLE else ConcurrentTimedRotatingFileHandler

# --- 2. настраиваем логирование ---------------------------------
LOG_DIR = os.getenv("LOG_DIR", "logs")
os.makedirs(LOG_DIR, exist_ok=True)
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

logger = logging.getLogger("bot")
logger.setLevel(logging.INFO)
logger.propagate = False  # ← чтобы root не дублировал

file_handler = RotatingFileHandler(
    os.path.join(LOG_DIR, "bot.log"),
    when="midnight",
    backupCount=7,
    encoding="utf-8",
    delay=True,                       # файл откроется при первой записи
)
file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
console_handler = logging.StreamHandler()
console_handler.setLevel(logging.DEBUG)
console_handler.setFormatter(logging.Formatter(LOG_FORMAT))

if not logger.handlers:               # повторный импорт в тестах не плодит хендлеры
    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

# --- 3. глушим болтливые библиотеки -------------------------------
for _name in ("urllib3", "botocore", "boto3", "s3transfer", "apscheduler"):
    logging.getLogger(_name).setLevel(logging.WARNING)

# --- 4. дублируем в root и gunicorn -----------------------------
root = logging.getLogger()
root.setLevel(logging.INFO)
for h in logger.handlers:
    if h not in root.handlers:
        root.addHandler(h)

guni = logging.getLogger("gunicorn.error")
for h in root.handlers:
    if h not in guni.handlers:
        guni.addHandler(h)

root.info("🔊 Logging ready (pid=%s)", os.getpid())
