import os
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context

REPO_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(REPO_ROOT / "backend"))

from db import build_engine, database_url  # noqa: E402
from models import Base  # noqa: E402

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def migration_url() -> str:
    # DATABASE_URL takes precedence over alembic.ini.
    return os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url") or database_url()


def _migration_options(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_offline(url: str) -> None:
    context.configure(url=url, literal_binds=True, **_migration_options(url))
    with context.begin_transaction():
        context.run_migrations()


def run_online(url: str) -> None:
    engine = build_engine(url)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, **_migration_options(url))
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_offline(migration_url())
else:
    run_online(migration_url())
