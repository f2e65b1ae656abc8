from database import engine, Base, AmazonOrder, AmazonItem, Category, PendingUndo

def migrate_db():
    print("Migrating database...")
    # Creates any missing tables (amazon_orders, amazon_items, categories, pending_undo)
    Base.metadata.create_all(bind=engine)
    print("Migration complete!")

if __name__ == "__main__":
    migrate_db()
