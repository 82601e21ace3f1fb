from utils.env_loader import ensure_env_loaded
ensure_env_loaded()
import os, uuid, boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from logger import logger
from utils import telegram_senders as tg

# Фото к заявкам: Telegram → S3 (любой S3-совместимый), в сессию кладём публичный URL.

def _client():
    # клиент создаём по требованию: без S3_* в ENV импорт модуля не должен падать
    return boto3.client(
        "s3",
        region_name=os.getenv("S3_REGION") or None,
        endpoint_url=os.getenv("S3_ENDPOINT") or None,
        aws_access_key_id=os.getenv("S3_ACCESS_KEY_ID"),
        aws_secret_access_key=os.getenv("S3_SECRET_ACCESS_KEY"),
        config=Config(connect_timeout=5, read_timeout=10),
    )


def _public_url(bucket: str, key: str) -> str:
    base = os.getenv("S3_PUBLIC_URL")
    if base:
        return f"{base.rstrip('/')}/{key}"
    endpoint = os.getenv("S3_ENDPOINT")
    if endpoint:
        return f"{endpoint.replace('https://', f'https://{bucket}.')}/{key}"
    return f"https://{bucket}.s3.amazonaws.com/{key}"


def upload_image(data: bytes, suffix: str = ".jpg") -> str:
    """
    Сохраняет изображение в папку tickets/… и возвращает публичный URL.
    """
    bucket = os.getenv("S3_BUCKET")
    if not bucket:
        raise RuntimeError("S3_BUCKET не задан")
    key = f"tickets/{uuid.uuid4()}{suffix}"
    _client().put_object(
        Bucket=bucket,
        Key=key,
        Body=data,
        ContentType="image/jpeg",
        ACL="public-read",
    )
    return _public_url(bucket, key)


def store_telegram_photo(file_id: str) -> str | None:
    """Скачать фото из Telegram и положить в S3. None: если не вышло (уже залогировано)."""
    data = tg.get_file_bytes(file_id)
    if not data:
        return None
    try:
        url = upload_image(data)
    except (BotoCoreError, ClientError, RuntimeError) as e:
        logger.error(f"❌ [media] upload {file_id} failed: {e}")
        return None
    logger.info(f"🖼 [media] {file_id} → {url}")
    return url
