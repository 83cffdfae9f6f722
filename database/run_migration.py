#!/usr/bin/env python3
"""
Run SQL migrations against the GentePRO database.

This script reads SQL files from the migrations directory and executes them
with asyncpg using DATABASE_URL from the environment.

Usage:
    python run_migration.py                 # list available migrations
    python run_migration.py <migration_file>
"""

import asyncio
import os
import sys

import asyncpg

MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "migrations")


async def run_sql(database_url: str, sql: str) -> None:
    """Execute a migration file in a single transaction."""
    conn = await asyncpg.connect(database_url.replace("postgresql+asyncpg://", "postgresql://"))
    try:
        async with conn.transaction():
            await conn.execute(sql)
    finally:
        await conn.close()


def main():
    if len(sys.argv) < 2:
        print(f"Available migrations in {MIGRATIONS_DIR}:")
        for f in sorted(os.listdir(MIGRATIONS_DIR)):
            if f.endswith(".sql"):
                print(f"  - {f}")
        return

    migration_file = sys.argv[1]

    # Check if file exists
    if not os.path.exists(migration_file):
        # Try relative to migrations directory
        migration_file = os.path.join(MIGRATIONS_DIR, migration_file)

    if not os.path.exists(migration_file):
        print(f"Error: Migration file not found: {migration_file}")
        sys.exit(1)

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("Error: DATABASE_URL is not set")
        sys.exit(1)

    # Read the SQL file
    with open(migration_file, "r") as f:
        sql = f.read()

    print(f"Migration file: {migration_file}")
    print(f"SQL length: {len(sql)} characters")

    asyncio.run(run_sql(database_url, sql))
    print("Migration complete")


if __name__ == "__main__":
    main()
