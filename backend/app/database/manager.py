from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.models.database_models import Base

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Owns the SQLAlchemy engine and session factory.
    Repositories open sessions through ``get_session``.
    """

    def __init__(self, db_url: str = settings.DATABASE_URL) -> None:
        self.db_url = db_url
        url = make_url(db_url)

        engine_kwargs = {"echo": False}
        if url.get_backend_name() == "sqlite":
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url.database in (None, "", ":memory:"):
                # one shared connection, otherwise every session sees an empty database
                engine_kwargs["poolclass"] = StaticPool
            else:
                Path(url.database).resolve().parent.mkdir(parents=True, exist_ok=True)
        else:
            engine_kwargs["pool_pre_ping"] = True

        self.engine = create_engine(db_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )
        logger.info(f"Database engine created for {url.render_as_string(hide_password=True)}")

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """Get SQLAlchemy session with automatic commit/rollback."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_db(self) -> None:
        """Apply Alembic migrations, or create tables directly when no migration config exists."""
        from app.database.migration_manager import MigrationManager

        migration_manager = MigrationManager(self.db_url, engine=self.engine)
        if migration_manager.is_configured():
            if not migration_manager.is_database_up_to_date():
                logger.info("Applying pending migrations...")
                migration_manager.upgrade_database()
                logger.info("Migrations applied successfully")
        else:
            logger.warning("Alembic config not found, creating tables directly")
            Base.metadata.create_all(bind=self.engine)

    def reset(self) -> None:
        """Drop and recreate every table."""
        Base.metadata.drop_all(bind=self.engine)
        Base.metadata.create_all(bind=self.engine)


db_manager = DatabaseManager()


def init_db() -> None:
    db_manager.init_db()
