"""Create the report tables: ``python init_db.py``."""

import structlog

from app.backend.src.core.config import get_settings
from app.backend.src.core.logging import configure_logging
from app.backend.src.db import Base, create_all
from app.backend.src.db.session import resolve_database_url

LOGGER = structlog.get_logger("init_db")


def init_db() -> None:
    configure_logging()
    create_all()
    LOGGER.info(
        "report_tables_created",
        database=resolve_database_url(get_settings().database_url).render_as_string(
            hide_password=True
        ),
        tables=sorted(Base.metadata.tables),
    )


if __name__ == "__main__":
    init_db()
