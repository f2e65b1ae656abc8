from categorizer import ensure_amazon_categories
from database import init_db, SessionLocal
from repository import AmazonRepository

def seed_categories():
    init_db()
    db = SessionLocal()
    try:
        added = ensure_amazon_categories(AmazonRepository(db))
        db.commit()
    finally:
        db.close()

    if added:
        print(f"Added {added} Amazon expense categories.")
    else:
        print("Amazon expense categories already exist. Skipping seed.")
    return added

if __name__ == "__main__":
    seed_categories()
