# mpbot/storage/__init__.py
import logging

from mpbot.config import Settings
from mpbot.database import make_engine, make_session_factory
from mpbot.storage.base import Store
from mpbot.storage.jsonfile import JsonFileStore
from mpbot.storage.sql import SqlStore

log = logging.getLogger("mpbot.storage")

__all__ = ["Store", "SqlStore", "JsonFileStore", "build_store"]


def build_store(settings: Settings) -> Store:
    """Pick the storage backend named in settings."""
    if settings.storage_backend == "json":
        log.info("using JSON file store at %s", settings.json_store_path)
        return JsonFileStore(settings.json_store_path)
    engine = make_engine(settings.database_url)
    log.info("using SQL store at %s", engine.url.render_as_string(hide_password=True))
    return SqlStore(make_session_factory(engine), engine=engine)
