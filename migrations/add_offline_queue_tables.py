"""
Migration script to add the offline queue tables.

Creates queued_mutations (writes waiting for replay) and replay_runs (audit
log of replay passes) on devices whose database predates them.

Run this script with:
    python migrations/add_offline_queue_tables.py

Or from the app context:
    from migrations.add_offline_queue_tables import migrate
    migrate()
"""

import sys
import os

# Add parent directory to path to import fieldsync modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fieldsync import create_app
from fieldsync.models import db, QueuedMutation, ReplayRun
from sqlalchemy import inspect

TABLES = (
    ("queued_mutations", QueuedMutation),
    ("replay_runs", ReplayRun),
)


def table_exists(table_name):
    """Check if a table exists in the database."""
    inspector = inspect(db.engine)
    return table_name in inspector.get_table_names()


def create_table(table_name, model):
    if table_exists(table_name):
        print(f"✓ Table '{table_name}' already exists. Migration not needed.")
        return True

    print(f"Creating '{table_name}' table...")
    try:
        model.__table__.create(db.engine, checkfirst=True)
    except Exception as e:
        print(f"✗ ERROR: Failed to create table '{table_name}': {e}")
        db.session.rollback()
        return False

    if not table_exists(table_name):
        print(f"✗ ERROR: Table '{table_name}' creation verification failed")
        return False

    print(f"✓ Successfully created '{table_name}' table")
    inspector = inspect(db.engine)
    print("\nTable structure:")
    for col in inspector.get_columns(table_name):
        print(f"  - {col['name']}: {col['type']}")

    indexes = inspector.get_indexes(table_name)
    if indexes:
        print("\nIndexes:")
        for idx in indexes:
            print(f"  - {idx['name']}: {idx['column_names']}")
    return True


def migrate():
    """Create the offline queue tables if they don't exist."""
    app = create_app({"SCHEDULER_ENABLED": False})

    with app.app_context():
        return all(create_table(name, model) for name, model in TABLES)


if __name__ == "__main__":
    success = migrate()
    sys.exit(0 if success else 1)
