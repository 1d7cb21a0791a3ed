from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from instawin.db.engine import make_engine


def upgrade_db(target_revision: str = "head") -> None:
    """Apply Alembic migrations up to the requested revision."""
    project_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def print_tables() -> None:
    """Print the tables of the configured database with their row counts."""
    engine = make_engine()
    insp = inspect(engine)
    names = sorted(insp.get_table_names())
    with engine.connect() as conn:
        for name in names:
            if name == "alembic_version":
                continue
            count = conn.exec_driver_sql(f'SELECT COUNT(*) FROM "{name}"').scalar()
            print(f"  {name}: {count} rows")


def main() -> None:
    """Bring the schema to head and report what is in the database."""
    upgrade_db()
    print("Database upgraded to head.")
    print_tables()


if __name__ == "__main__":
    main()
