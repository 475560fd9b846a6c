"""Database bootstrapping utilities."""

from __future__ import annotations

import logging

from app.packages.drive.db import session as db_session
from app.packages.drive.models.base import Base
from app.packages.drive.models.fs_item import FsItem  # noqa: F401 - ensure table registration

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create all database tables if they do not exist.

    Schema migrations are owned by the deployment tooling; this only guarantees
    a usable schema for fresh databases and tests.
    """
    Base.metadata.create_all(bind=db_session.engine)
    logger.debug("Database schema ensured on %s", db_session.engine.url.render_as_string(hide_password=True))
