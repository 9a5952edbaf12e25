import os
from pathlib import Path

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from macai.db.models import Base

DB_PATH = os.getenv("DB_PATH", "./data/macai.db")

connect_args = {"check_same_thread": False}


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _build_engine(db_path: str) -> Engine:
    # SQLite will not create missing parent directories on its own.
    Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
    built = create_engine(f"sqlite:///{db_path}", connect_args=connect_args)
    event.listen(built, "connect", _enable_foreign_keys)
    return built


engine = _build_engine(DB_PATH)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def configure_database(db_path: str) -> None:
    """Rebind the session factory to another SQLite file (used by tests)."""
    global DB_PATH, engine
    DB_PATH = db_path
    engine = _build_engine(DB_PATH)
    SessionLocal.configure(bind=engine)


def create_tables() -> None:
    Base.metadata.create_all(bind=engine)
    # Columns added after the first release; SQLite has no migrations here.
    with engine.begin() as conn:
        user_columns = {row[1] for row in conn.execute(text("PRAGMA table_info(users)")).fetchall()}
        if "emergency_contacts_json" not in user_columns:
            conn.execute(text("ALTER TABLE users ADD COLUMN emergency_contacts_json TEXT NOT NULL DEFAULT '[]'"))

        alert_columns = {
            row[1] for row in conn.execute(text("PRAGMA table_info(emergency_alerts)")).fetchall()
        }
        if "contacts_notified_json" not in alert_columns:
            conn.execute(
                text("ALTER TABLE emergency_alerts ADD COLUMN contacts_notified_json TEXT NOT NULL DEFAULT '[]'")
            )


def get_db():
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()
