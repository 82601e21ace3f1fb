from utils.env_loader import ensure_env_loaded
ensure_env_loaded()
import gevent.monkey
gevent.monkey.patch_all(subprocess=True, ssl=True)
# ----- ENV sanity check --------------------------------------------------
from utils.env_check import check_env
check_env()                       # только логируем, не падаем
import os
import logging
from flask import Flask
from logger import logger
from housekeeping import start_housekeeping
from utils.env_flags import is_local_dev, storage_backend

from routes.home_route import home_bp
from routes.ping_route import ping_bp
from routes.webhook_route import webhook_bp
from routes.debug_mem_route import debug_mem_bp

TELEGRAM_WEBHOOK_SECRET = os.getenv("TELEGRAM_WEBHOOK_SECRET")

logger.info("🟢 app.py импортирован")


# ─────────────────────────────────────────────────────────────
# ФАБРИКА ПРИЛОЖЕНИЯ
def create_app():
    """
    Создаёт и настраивает Flask-приложение.
    Фоновые задачи стартуют здесь, а не при импорте, чтобы не было двойного старта.
    """
    app = Flask(__name__)

    # Логгер Flask → root/gunicorn
    flask_log = app.logger
    flask_log.setLevel(logging.INFO)
    flask_log.handlers.clear()
    flask_log.propagate = True

    app.register_blueprint(home_bp)
    app.register_blueprint(ping_bp)
    app.register_blueprint(webhook_bp)
    app.register_blueprint(debug_mem_bp)

    # Чистка протухших сессий и ротация логов (кроме LOCAL_DEV)
    try:
        start_housekeeping()
    except Exception as e:
        logger.warning(f"⚠️ Не удалось запустить housekeeping: {e}")

    # Конфиг для вебхука (юнит-тесты переопределяют эти ключи у app.config)
    app.config.update(
        TELEGRAM_WEBHOOK_SECRET=TELEGRAM_WEBHOOK_SECRET,
    )

    logger.info(f"🗄 storage={storage_backend()} local_dev={is_local_dev()}")
    return app

# Создаём экземпляр через фабрику: gunicorn берёт app:app
app = create_app()


if __name__ == '__main__':
    try:
        logger.info("📡 Старт сервера Flask...")
        app.run(host='0.0.0.0', port=int(os.getenv("PORT", "5000")))
    except Exception as e:
        logger.exception("💥 Ошибка при запуске Flask-приложения")
