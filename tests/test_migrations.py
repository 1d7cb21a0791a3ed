import tempfile
import unittest
from pathlib import Path

from alembic import command
from alembic.autogenerate import compare_metadata
from alembic.config import Config
from alembic.migration import MigrationContext
from sqlalchemy import create_engine, inspect

from instawin.models import Base

PROJECT_ROOT = Path(__file__).resolve().parents[1]


class MigrationsTestCase(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(self.tmpdir.name) / "migrated.db"
        self.engine = create_engine(f"sqlite+pysqlite:///{db_path}", future=True)

        # No ini file: keeps the test's logging configuration untouched.
        self.config = Config()
        self.config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))

    def tearDown(self):
        self.engine.dispose()
        self.tmpdir.cleanup()

    def run_command(self, fn, revision: str) -> None:
        with self.engine.begin() as connection:
            self.config.attributes["connection"] = connection
            fn(self.config, revision)

    def test_head_matches_models(self):
        self.run_command(command.upgrade, "head")

        with self.engine.connect() as connection:
            context = MigrationContext.configure(
                connection, opts={"compare_type": True}
            )
            diff = compare_metadata(context, Base.metadata)
        self.assertEqual(diff, [])

    def test_token_created_at_is_not_nullable(self):
        self.run_command(command.upgrade, "head")

        columns = {c["name"]: c for c in inspect(self.engine).get_columns("tokens")}
        self.assertFalse(columns["created_at"]["nullable"])

    def test_downgrade_to_base_drops_every_table(self):
        self.run_command(command.upgrade, "head")
        self.run_command(command.downgrade, "base")

        tables = set(inspect(self.engine).get_table_names()) - {"alembic_version"}
        self.assertEqual(tables, set())


if __name__ == "__main__":
    unittest.main()
