"""
Migration tests.

Verifies:
- `flask db upgrade` builds the schema on an empty database
- The migrated schema matches the models (nothing left for autogenerate)
- The one-active-subscription index exists after upgrade
"""

from pathlib import Path

from alembic.autogenerate import compare_metadata
from alembic.migration import MigrationContext
from flask_migrate import upgrade
from sqlalchemy import inspect

from gymoffice import create_app
from gymoffice.extensions import db

MIGRATIONS_DIR = str(Path(__file__).resolve().parent.parent / "migrations")


def _app(tmp_path):
    return create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'migrated.db'}",
    })


class TestMigrations:

    def test_upgrade_creates_schema(self, tmp_path):
        app = _app(tmp_path)
        with app.app_context():
            upgrade(directory=MIGRATIONS_DIR)

            tables = set(inspect(db.engine).get_table_names())
            assert {"users", "inventory_items", "purchase_orders", "sales", "user_subscriptions"} <= tables

            indexes = {ix["name"] for ix in inspect(db.engine).get_indexes("user_subscriptions")}
            assert "uq_user_subscriptions_one_active" in indexes
            db.engine.dispose()

    def test_migrated_schema_matches_models(self, tmp_path):
        app = _app(tmp_path)
        with app.app_context():
            upgrade(directory=MIGRATIONS_DIR)

            with db.engine.connect() as connection:
                diff = compare_metadata(MigrationContext.configure(connection), db.metadata)
            assert diff == []
            db.engine.dispose()

