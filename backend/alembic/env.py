from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine

from creditwise.settings import settings

config = context.config

# If there is alembic.ini logging config, it will be loaded
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = None  # migrations are written by hand


def run_migrations_offline() -> None:
    context.configure(
        url=settings.database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(settings.database_url, future=True, pool_pre_ping=True)
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
