from flask import Blueprint, jsonify
from logger import logger
from utils.env_flags import storage_backend

ping_bp = Blueprint("ping", __name__)

@ping_bp.route("/ping")
def ping():
    logger.info("🔔 Запрос PING")
    return jsonify(ok=True, storage=storage_backend()), 200
