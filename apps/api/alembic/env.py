from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from atelier.ai import models as ai_models  # noqa: F401
from atelier.compliance import models as compliance_models  # noqa: F401
from atelier.core.config import get_settings
from atelier.core.database import Base
from atelier.crm import models as crm_models  # noqa: F401
from atelier.tenancy import models as tenancy_models  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# DATABASE_URL (via Settings) wins over the ini default so migrations hit the same database as the API.
config.set_main_option("sqlalchemy.url", get_settings().database_url)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
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
