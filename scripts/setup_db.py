"""
Database initialization script for MediDispatch.
"""
import sys
import logging
from pathlib import Path

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def setup_database(db_url: str = None):
    """Create the schema and report what is already stored."""
    print("\n🗄️  Initializing MediDispatch Database...")
    print("="*60)

    try:
        from medidispatch.core.config import Config
        from medidispatch.core.entity_store import EntityStore
        from medidispatch.db.connection import init_db

        db_url = db_url or Config.DATABASE_URL or "sqlite:///./medidispatch.db"
        print(f"📍 Database URL: {db_url}")

        session_factory = init_db(db_url)
        print("✅ Database schema created successfully!")

        # Load through the store to prove rows round-trip into entities
        store = EntityStore(session_factory=session_factory)
        loaded = store.load()
        print(f"✅ Database connection verified! ({loaded} entities stored)")

        for kind, summary in store.get_state_summary().items():
            print(f"   {kind}: {summary['total']}")

        # Show database info
        if db_url.startswith('sqlite:///'):
            db_path = Path(db_url.replace('sqlite:///', '')).resolve()
            print(f"\n📊 SQLite Database: {db_path}")
            if db_path.exists():
                print(f"   Size: {db_path.stat().st_size:,} bytes")

        print("\n✅ Database ready!")
        print("="*60)
        return True

    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        print("\n❌ Database initialization failed!")
        return False


if __name__ == "__main__":
    success = setup_database(sys.argv[1] if len(sys.argv) > 1 else None)
    sys.exit(0 if success else 1)
