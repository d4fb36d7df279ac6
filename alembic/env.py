from sqlalchemy import create_engine, pool
from alembic import context
from shiptrack.core.config import settings
from shiptrack.db.session import Base
import shiptrack.db.models  # noqa

config = context.config
target_metadata = Base.metadata

# Kept apart from other services that share the database.
VERSION_TABLE = "alembic_version_shiptrack"

def _dsn() -> str:
    return config.get_main_option("sqlalchemy.url") or settings.POSTGRES_DSN

def run_migrations_offline():
    context.configure(
        url=_dsn(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        version_table=VERSION_TABLE,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()

def run_migrations_online():
    connectable = create_engine(_dsn(), poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            version_table=VERSION_TABLE,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
