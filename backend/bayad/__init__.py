from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from flask import Flask
from flask_cors import CORS

from bayad.api.routes import api_bp
from bayad.config import Config
from bayad.db.repository import SessionRepository
from bayad.db.store import KeyValueStore, MemoryStore, PersistenceFailure, PostgresStore
from bayad.domain.history import HistoryStore
from bayad.domain.session import BillSession
from bayad.domain.settlement import SettlementTracker

logger = logging.getLogger(__name__)


def _build_store(database_url: str) -> KeyValueStore:
    if not database_url:
        logger.info("DATABASE_URL not set; keeping bills in memory")
        return MemoryStore()
    store = PostgresStore(database_url)
    try:
        store.ensure_schema()
    except PersistenceFailure:
        # reads fall back to defaults; writes will report the failure
        logger.exception("Could not prepare kv_store table")
    return store


def create_app(
    config_overrides: Optional[Mapping[str, Any]] = None,
    *,
    store: Optional[KeyValueStore] = None,
) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
    CORS(app)  # ok for MVP; tighten later

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if store is None:
        store = _build_store(app.config.get("DATABASE_URL", ""))
    repository = SessionRepository(store, key_prefix=app.config["BAYAD_KEY_PREFIX"])
    session = BillSession(repository)
    history = HistoryStore(repository)

    app.extensions["bayad.session"] = session
    app.extensions["bayad.history"] = history
    app.extensions["bayad.settlement"] = SettlementTracker(session, history)

    app.register_blueprint(api_bp)
    return app
