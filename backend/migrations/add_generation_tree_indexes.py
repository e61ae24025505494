"""
Migration: Add generation tree and usage log indexes
Safe to run repeatedly against an existing PostgreSQL database.

Usage:
    python migrations/add_generation_tree_indexes.py
"""

import os
import sys

import psycopg2
from urllib.parse import urlparse

INDEXES = [
    ("idx_generation_nodes_root", "generation_nodes", "(root_id)"),
    ("idx_generation_nodes_parent", "generation_nodes", "(parent_id)"),
    ("idx_generation_nodes_root_selected", "generation_nodes", "(root_id, selected)"),
    ("idx_generation_nodes_created", "generation_nodes", "(created_at)"),
    ("ix_usage_logs_requested_at", "usage_logs", "(requested_at)"),
]


def _load_database_url():
    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        return database_url

    # Fall back to the backend .env file
    env_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env")
    if os.path.exists(env_path):
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line.startswith("DATABASE_URL="):
                    return line.split("=", 1)[1].strip()
    return None


def run_migration():
    database_url = _load_database_url()
    if not database_url:
        print("ERROR: DATABASE_URL not configured")
        return False

    print("Connecting to database...")
    parsed = urlparse(database_url)

    conn = psycopg2.connect(
        host=parsed.hostname,
        port=parsed.port or 5432,
        user=parsed.username,
        password=parsed.password,
        dbname=parsed.path.lstrip("/").split("?")[0],
        sslmode=os.environ.get("PGSSLMODE", "require"),
    )

    try:
        cursor = conn.cursor()
        for name, table, columns in INDEXES:
            print(f"Ensuring index {name} on {table}{columns}...")
            cursor.execute(f"CREATE INDEX IF NOT EXISTS {name} ON {table} {columns}")

        conn.commit()
        print("Migration completed successfully!")
        return True

    except psycopg2.Error as e:
        print(f"ERROR: {e}")
        conn.rollback()
        return False
    finally:
        conn.close()


if __name__ == "__main__":
    success = run_migration()
    sys.exit(0 if success else 1)
