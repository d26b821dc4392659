"""
MongoDB connection helpers

One MongoClient is held for the whole run. Only connectivity failures are
retried; bad credentials fail on the first attempt.
"""
import time
from datetime import datetime, timezone
from typing import Optional

from loguru import logger
from pymongo import MongoClient
from pymongo.errors import ConnectionFailure

from config import Settings

_client: Optional[MongoClient] = None


def create_client(settings: Settings) -> MongoClient:
    return MongoClient(settings.database_url, serverSelectionTimeoutMS=settings.server_timeout_ms)


def connect(settings: Settings, sleep=time.sleep) -> MongoClient:
    """Open a client and ping the admin database, retrying transient failures."""
    client = create_client(settings)
    attempt = 1
    while True:
        try:
            client.admin.command("ping")
            logger.info(f"Connected to MongoDB (attempt {attempt}/{settings.connect_retries})")
            return client
        except ConnectionFailure as e:
            if attempt >= settings.connect_retries:
                client.close()
                raise
            logger.warning(f"MongoDB not reachable ({e}); retrying in {settings.retry_delay}s")
            sleep(settings.retry_delay)
            attempt += 1
        except Exception:
            client.close()
            raise


def get_client() -> Optional[MongoClient]:
    """Shared client for the status API, None when DATABASE_URL is unusable."""
    global _client
    if _client is None:
        settings = Settings.from_env()
        try:
            _client = create_client(settings)
        except Exception as e:
            logger.error(f"Could not create MongoDB client: {e}")
            return None
    return _client


def now() -> datetime:
    return datetime.now(timezone.utc)


def stamp_document(data: dict, *fields: str) -> dict:
    """Copy of data with the given timestamp fields set to the current time."""
    ts = now()
    out = dict(data)
    for field in fields:
        out[field] = ts
    return out
