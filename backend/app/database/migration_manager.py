import logging
from pathlib import Path
from typing import Optional

from alembic.config import Config
from alembic import command
from alembic.script import ScriptDirectory
from alembic.runtime.migration import MigrationContext
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

DEFAULT_ALEMBIC_INI = Path(__file__).resolve().parent.parent.parent / "alembic.ini"


class MigrationManager:
    """
    Manages database migrations using Alembic.
    """

    def __init__(self, db_url: str, alembic_cfg_path: Optional[str] = None, engine: Optional[Engine] = None):
        self.db_url = db_url
        self.engine = engine or create_engine(db_url)
        self.alembic_cfg_path = Path(alembic_cfg_path) if alembic_cfg_path else DEFAULT_ALEMBIC_INI

        self.alembic_cfg = Config(str(self.alembic_cfg_path))
        self.alembic_cfg.set_main_option("script_location", str(self.alembic_cfg_path.parent / "migrations"))
        self.alembic_cfg.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))

    def is_configured(self) -> bool:
        return self.alembic_cfg_path.exists()

    def is_database_up_to_date(self) -> bool:
        script_dir = ScriptDirectory.from_config(self.alembic_cfg)
        with self.engine.connect() as connection:
            context = MigrationContext.configure(connection)
            current_rev = context.get_current_revision()
            head_rev = script_dir.get_current_head()
            logger.debug(f"Migration revisions: current={current_rev} head={head_rev}")
            return current_rev == head_rev

    def upgrade_database(self, revision: str = "head") -> None:
        with self.engine.begin() as connection:
            self.alembic_cfg.attributes["connection"] = connection
            command.upgrade(self.alembic_cfg, revision)
        logger.info(f"Database upgraded to revision: {revision}")
