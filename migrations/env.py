from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from app.core.config import settings
from app.db.base import Base
from app.db.session import _normalize_dsn
from app.models import sheet_row, stored_file  # noqa: F401  (registra le tabelle)

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Le tabelle dei gateway: stored_files (foto) e sheet_rows (fogli)
target_metadata = Base.metadata

# DATABASE_URL (env / .env) ha la precedenza su alembic.ini
config.set_main_option("sqlalchemy.url", _normalize_dsn(settings.DATABASE_URL))


def run_migrations_offline() -> None:
    """Solo generazione SQL, senza connessione."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
