from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from app.core.config import settings
from app.db.session import Base
from app.models import audit_log, booking, payment, user  # noqa: F401  registers tables on Base.metadata

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# start_api.py sets the URL explicitly; plain `alembic upgrade` falls back to settings
url = config.get_main_option("sqlalchemy.url") or settings.DATABASE_URL
if not url:
    raise RuntimeError("DATABASE_URL is not set")

target_metadata = Base.metadata
_common = {"target_metadata": target_metadata, "compare_type": True}


def run_migrations_offline() -> None:
    context.configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"}, **_common)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(url, poolclass=pool.NullPool)
    with engine.connect() as connection:
        # sqlite cannot ALTER most columns in place
        context.configure(connection=connection, render_as_batch=connection.dialect.name == "sqlite", **_common)
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
