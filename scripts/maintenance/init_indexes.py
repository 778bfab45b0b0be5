"""
Create the MongoDB indexes every query relies on.

Safe to run repeatedly; existing indexes are left as they are.

Usage:
    python -m scripts.maintenance.init_indexes
"""

from recall.store.mongo import MongoDocumentStore, get_database_name


def main():
    print(f"Ensuring indexes in {get_database_name()}...")
    created = MongoDocumentStore().ensure_indexes()
    for name in created:
        print(f"  ✓ {name}")
    print(f"\n✓ {len(created)} indexes ready")


if __name__ == "__main__":
    main()
