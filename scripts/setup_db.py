"""
Database Setup Script
Creates the engagement tables and optionally runs the one-time migrations

Run: python scripts/setup_db.py [--migrate]
"""

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parent.parent

dotenv_path = ROOT_DIR / ".env"
if dotenv_path.exists():
    load_dotenv(dotenv_path)
    print(f"✅ Loaded .env from: {dotenv_path}")

from engagement_core.app.config import get_config, setup_logging, validate_config
from engagement_core.app.database import DatabaseManager
from engagement_core.app.dependencies import build_services


async def setup(run_migrations: bool) -> None:
    manager = DatabaseManager()
    try:
        print("\n📊 Creating database tables...")
        await manager.create_tables()

        if run_migrations:
            services = build_services(manager.session_factory)

            print("\n🔀 Migrating legacy owner field...")
            owners = await services.videos.migrate_owner_field()
            print(f"  migrated={owners['migrated']} orphaned={owners['orphaned']}")

            print("\n🔤 Lower-casing display names...")
            print(f"  updated={await services.users.migrate_display_names()}")

            print("\n🏷️  Back-filling tags...")
            tags = await services.videos.backfill_tags()
            print(f"  examined={tags['examined']} updated={tags['updated']}")
    finally:
        await manager.close()


def main():
    """Initialize database and validate configuration"""
    parser = argparse.ArgumentParser(description="Set up the engagement database")
    parser.add_argument("--migrate", action="store_true", help="Run one-time data migrations")
    args = parser.parse_args()

    print("=" * 60)
    print("🔧 Engagement Core - Database Setup")
    print("=" * 60)

    setup_logging()

    print("\n🔍 Validating Configuration...")
    validation = validate_config()

    if not validation["valid"]:
        print("\n❌ Configuration validation failed:")
        for error in validation["errors"]:
            print(f"  - {error}")
        sys.exit(1)

    for warning in validation["warnings"]:
        print(f"  ⚠️  {warning}")

    print(f"\n📦 Using database: {get_config().database.url}")

    try:
        asyncio.run(setup(args.migrate))
    except Exception as e:
        print(f"\n❌ Database setup failed: {e}")
        import traceback

        traceback.print_exc()
        sys.exit(1)

    print("\n" + "=" * 60)
    print("✅ Database setup complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
