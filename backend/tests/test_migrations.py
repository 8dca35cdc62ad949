import importlib.util
import unittest
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import UniqueConstraint, create_engine, inspect
from sqlalchemy.pool import StaticPool

from playedit.db.models import Base

VERSIONS = Path(__file__).resolve().parents[1] / "alembic" / "versions"
REVISIONS = ["0001_initial_schema", "0002_recommendation_state"]


def _load(name: str):
    spec = importlib.util.spec_from_file_location(f"migration_{name}", VERSIONS / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestMigrations(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite://", poolclass=StaticPool)
        self.migrations = [_load(name) for name in REVISIONS]

    def _run(self, step) -> None:
        with self.engine.begin() as connection:
            with Operations.context(MigrationContext.configure(connection)):
                step()

    def _upgrade(self) -> None:
        for migration in self.migrations:
            self._run(migration.upgrade)

    def test_revisions_form_one_chain(self) -> None:
        self.assertIsNone(self.migrations[0].down_revision)
        for previous, current in zip(self.migrations, self.migrations[1:]):
            self.assertEqual(current.down_revision, previous.revision)

    def test_upgrade_builds_the_model_schema(self) -> None:
        self._upgrade()
        inspector = inspect(self.engine)

        self.assertEqual(set(inspector.get_table_names()), set(Base.metadata.tables))
        for name, table in Base.metadata.tables.items():
            self.assertEqual(
                {c["name"] for c in inspector.get_columns(name)},
                {c.name for c in table.columns},
                name,
            )
            self.assertEqual(
                {i["name"] for i in inspector.get_indexes(name)},
                {i.name for i in table.indexes},
                name,
            )
            self.assertEqual(
                {u["name"] for u in inspector.get_unique_constraints(name)},
                {c.name for c in table.constraints if isinstance(c, UniqueConstraint)},
                name,
            )

    def test_downgrade_removes_every_table(self) -> None:
        self._upgrade()
        for migration in reversed(self.migrations):
            self._run(migration.downgrade)
        self.assertEqual(inspect(self.engine).get_table_names(), [])

    def test_migration_0002_contains_recommendation_state_statements(self) -> None:
        content = (VERSIONS / "0002_recommendation_state.py").read_text(encoding="utf-8")
        self.assertIn("uq_recommendation_user_game", content)
        self.assertIn('"DISMISSED", "WANT_TO_PLAY"', content)
        self.assertIn("DROP TYPE IF EXISTS recommendation_action", content)


if __name__ == "__main__":
    unittest.main()
