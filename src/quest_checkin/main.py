from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .container import Container, build_container
from .core.enums import StorageBackend
from .database.bootstrap import apply_schema, ensure_demo_profiles, list_tables
from .checkin.controller import register as register_checkin
from .penalties.controller import register as register_penalties
from .sessions.controller import register as register_sessions

logger = logging.getLogger("quest_checkin")

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "database" / "schema.sql"


def create_app(container: Optional[Container] = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    db_config = getattr(settings, "DB_CONFIG")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))

    logging.basicConfig(
        level=getattr(settings, "LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if container is None:
        backend = StorageBackend(getattr(settings, "STORAGE_BACKEND", StorageBackend.MYSQL.value))
        logger.info(
            "settings=%s backend=%s db=%s@%s:%s/%s",
            settings_module,
            backend.value,
            db_config.get("user"),
            db_config.get("host"),
            db_config.get("port", 3306),
            db_config.get("database"),
        )

        if backend == StorageBackend.MYSQL and getattr(settings, "AUTO_INIT_DB", False):
            apply_schema(db_config, schema_path=SCHEMA_PATH)
            logger.info("schema ready (tables=%d)", len(list_tables(db_config)))

        container = build_container(
            db_config=db_config,
            backend=backend,
            read_attempts=int(getattr(settings, "READ_RETRY_ATTEMPTS", 3)),
        )

        if getattr(settings, "AUTO_SEED_DB", False):
            ensure_demo_profiles(container.profiles_repo)

    app.extensions["quest_checkin"] = container

    register_sessions(app, container)
    register_checkin(app, container)
    register_penalties(app, container)

    return app
