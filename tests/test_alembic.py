"""
test_alembic.py — Verify Alembic migration setup and structure.

Parses the migration files instead of importing them, so no live
database or Alembic runtime context is needed.

Called by: pytest
Depends on: alembic/, app.models
"""

import ast
from pathlib import Path

from app.models import Base

ROOT = Path(__file__).parent.parent
MIGRATION_DIR = ROOT / "alembic" / "versions"


def _initial():
    files = sorted(MIGRATION_DIR.glob("*.py"))
    assert files, "No migration files found"
    return files[0].read_text()


def _assignments(src: str) -> dict:
    tree = ast.parse(src)
    out = {}
    for node in tree.body:
        if isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name) and node.value is not None:
            out[node.target.id] = ast.literal_eval(node.value)
    return out


def test_initial_migration_has_required_attributes():
    src = _initial()
    values = _assignments(src)
    assert values["revision"] == "001_initial"
    assert values["down_revision"] is None
    tree = ast.parse(src)
    funcs = {n.name for n in tree.body if isinstance(n, ast.FunctionDef)}
    assert {"upgrade", "downgrade"} <= funcs


def test_initial_migration_creates_every_model_table():
    src = _initial()
    for table in Base.metadata.tables:
        assert f'"{table}"' in src, f"{table} missing from baseline migration"


def test_ledger_unique_index_in_migration():
    src = _initial()
    assert '"ix_processed_user_message"' in src
    assert "unique=True" in src


def test_env_uses_app_metadata():
    env = (ROOT / "alembic" / "env.py").read_text()
    assert "target_metadata = Base.metadata" in env
    assert "database_url" in env


def test_alembic_ini_points_at_scripts():
    ini = (ROOT / "alembic.ini").read_text()
    assert "script_location = alembic" in ini
