from __future__ import annotations

import sys
from pathlib import Path

from alembic.autogenerate import api as ag_api
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

from instawin.db.engine import make_engine
from instawin.models import Base


def _head_revision() -> str | None:
    project_root = Path(__file__).resolve().parents[1]
    cfg = Config(str(project_root / "alembic.ini"))
    cfg.set_main_option("script_location", str(project_root / "alembic"))
    return ScriptDirectory.from_config(cfg).get_current_head()


def _print_ops(ops, indent: int = 0) -> None:
    prefix = "  " * indent
    for op in ops:
        print(f"{prefix}- {op}")
        sub_ops = getattr(op, "ops", None)
        if sub_ops:
            _print_ops(sub_ops, indent + 1)


def main() -> int:
    """Compare the database with the models and the migration head.

    Exit status is 0 when both match, 1 on drift and 2 when the check
    itself failed.
    """
    engine = make_engine()
    url_display = engine.url.render_as_string(hide_password=True)
    head = _head_revision()
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(
                connection=connection,
                opts={
                    "compare_type": True,
                    "compare_server_default": True,
                    "render_as_batch": connection.dialect.name == "sqlite",
                },
            )
            current = context.get_current_revision()
            upgrade_ops = ag_api.produce_migrations(context, Base.metadata).upgrade_ops
    except Exception as exc:
        print(f"Schema drift check: ERROR for {url_display}: {exc}", file=sys.stderr)
        return 2

    status = 0
    if current != head:
        print(
            f"Schema drift check: database {url_display} is at revision "
            f"{current or '<none>'}, migrations head is {head}."
        )
        status = 1
    if upgrade_ops is None:
        print(f"Schema drift check: ERROR for {url_display}: missing upgrade ops.")
        return 2
    if not upgrade_ops.is_empty():
        print(f"Schema drift check: models differ from {url_display}:")
        _print_ops(upgrade_ops.ops or [])
        status = 1
    if status == 0:
        print(f"Schema drift check: OK ({url_display} at {head}).")
    return status


if __name__ == "__main__":
    raise SystemExit(main())
