from sqlalchemy import inspect

import migrate_db
import seed_db
from categorizer import AMAZON_EXPENSE_CATEGORIES
from database import build_engine


def test_migrate_creates_tables(tmp_path, monkeypatch):
    eng = build_engine(f"sqlite:///{tmp_path / 'fresh.db'}")
    monkeypatch.setattr(migrate_db, "engine", eng)
    migrate_db.migrate_db()
    tables = set(inspect(eng).get_table_names())
    assert {"transactions", "amazon_orders", "amazon_items", "categories", "pending_undo"} <= tables
    eng.dispose()


def test_seed_is_idempotent(session_factory, monkeypatch, repo):
    monkeypatch.setattr(seed_db, "SessionLocal", session_factory)
    monkeypatch.setattr(seed_db, "init_db", lambda: None)

    assert seed_db.seed_categories() == len(AMAZON_EXPENSE_CATEGORIES)
    assert seed_db.seed_categories() == 0
    assert len(repo.list_categories()) == len(AMAZON_EXPENSE_CATEGORIES)
