from __future__ import annotations

import atexit
import importlib
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .approvals.controller import register as register_approvals
from .breaks.controller import register as register_breaks
from .common.http import register_error_handlers
from .container import Container, build_container
from .core.settings import TrackerSettings
from .database.bootstrap import apply_schema, list_tables
from .geofence.controller import register as register_geofence
from .sessions.controller import register as register_sessions
from .sync.controller import register as register_sync

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)


def create_app(container: Optional[Container] = None) -> Flask:
    """Build the API app.

    Pass ``container`` to run over pre-built (for example in-memory) repositories;
    otherwise the MySQL-backed container is built from the active settings module.
    """
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))

    if container is None:
        db_config = getattr(settings, "DB_CONFIG")
        logger.info(
            "settings=%s db=%s@%s:%s/%s",
            settings_module,
            db_config.get("user"),
            db_config.get("host"),
            db_config.get("port", 3306),
            db_config.get("database"),
        )
        if bool(getattr(settings, "AUTO_INIT_DB", False)):
            schema_path = Path(__file__).resolve().parents[3] / "database" / "schema.sql"
            apply_schema(db_config, schema_path=schema_path)
            logger.info("schema ready (tables=%d)", len(list_tables(db_config)))
        container = build_container(db_config=db_config, settings=TrackerSettings.from_module(settings))
        atexit.register(container.shutdown)

    app.extensions["workforce_attendance"] = container
    register_error_handlers(app)
    register_geofence(app, container)
    register_sessions(app, container)
    register_breaks(app, container)
    register_approvals(app, container)
    register_sync(app, container)

    return app
