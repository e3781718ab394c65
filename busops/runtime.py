import os
from typing import Optional

import structlog
from fastapi import Request

from .config import Settings
from .db import Database
from .logging import setup_logging
from .services.notification_hub import NotificationHub


logger = structlog.get_logger(__name__)


class Runtime:
    """Process-wide services handed to callers instead of module globals.

    ``initialize()`` opens the store and ``teardown()`` releases it; both are
    safe to call more than once.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.database = Database(self.settings.database_url)
        self.hub = NotificationHub()

    @property
    def is_initialized(self) -> bool:
        return self.database.is_initialized

    def initialize(self) -> "Runtime":
        if self.database.is_initialized:
            return self
        setup_logging(self.settings.log_level, json_logs=self.settings.environment != "dev")
        # Ensure local SQLite directory exists
        if self.settings.database_url.startswith("sqlite:///./"):
            os.makedirs(os.path.dirname(self.settings.database_url[len("sqlite:///"):]) or ".", exist_ok=True)
        self.database.initialize(create_all=self.settings.auto_create_db)
        logger.info("runtime_initialized", environment=self.settings.environment, timezone=self.settings.tz_default)
        return self

    def teardown(self) -> None:
        self.hub.clear()
        self.database.teardown()
        logger.info("runtime_stopped")


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def get_hub(request: Request) -> NotificationHub:
    return request.app.state.runtime.hub


def get_settings(request: Request) -> Settings:
    return request.app.state.runtime.settings
