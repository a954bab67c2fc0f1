from logging.config import fileConfig
from alembic import context

from atendimento_hub.core.db import build_engine
from atendimento_hub.core.settings import Settings
from atendimento_hub.repo.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

def database_url() -> str:
    """AH_DATABASE_URL (env ou .env), a mesma URL usada pela app e pelo worker."""
    return config.get_main_option("sqlalchemy.url") or Settings().database_url

def run_migrations_offline():
    context.configure(
        url=database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()

def run_migrations_online():
    engine = build_engine(database_url())
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
