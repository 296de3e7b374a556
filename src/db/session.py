"""Database session factory and initialization."""

from sqlmodel import SQLModel, create_engine, Session
from pathlib import Path

from src.config import DATABASE_URL

# Convert sqlite:// to file path for local development
if DATABASE_URL.startswith("sqlite:///") and ":memory:" not in DATABASE_URL:
    db_path = DATABASE_URL.replace("sqlite:///", "")
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in DATABASE_URL else {},
    echo=False,
)


def create_db_and_tables():
    """Create all tables if they don't exist."""
    # Import registers the tables on SQLModel.metadata
    import src.db.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    """Get a new database session."""
    return Session(engine)


def init_db():
    """Initialize database on startup."""
    create_db_and_tables()
