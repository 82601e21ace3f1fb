# housekeeping.py
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers import SchedulerAlreadyRunningError
from logger import logger, RotatingFileHandler
from state.state import purge_expired
from utils.env_flags import is_local_dev

# Фон вне запросов: чистка брошенных мастеров + ночная ротация логов.
scheduler = BackgroundScheduler()

PURGE_EVERY_MIN = 10


def purge_sessions():
    try:
        purge_expired()
    except Exception as e:
        logger.exception(f"💥 purge_expired упал: {e}")


def manual_rollover():
    for handler in logger.handlers:
        if isinstance(handler, RotatingFileHandler):
            logger.info("🌀 Ручной вызов doRollover()")
            handler.doRollover()
            break
    else:
        logger.warning("❗ Файловый хендлер с ротацией не найден")


def start_housekeeping() -> bool:
    if is_local_dev():
        logger.info("🟡 LOCAL_DEV=1: housekeeping scheduler отключён")
        return False
    scheduler.add_job(purge_sessions, "interval", minutes=PURGE_EVERY_MIN,
                      id="purge_sessions", replace_existing=True)
    scheduler.add_job(manual_rollover, "cron", hour=0, minute=5,
                      id="log_rollover", replace_existing=True)
    try:
        scheduler.start()
    except SchedulerAlreadyRunningError:
        # Планировщик уже запущен – игнорируем вторую попытку
        pass
    logger.info("🕒 Планировщик чистки сессий и ротации логов запущен")
    return True
