from contextlib import contextmanager
from urllib.parse import quote_plus

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL, DB_CONFIG, DB_SSL
from models import Base  # triggers imports of all tables


def build_database_url() -> str:
    if DATABASE_URL:
        return DATABASE_URL
    password = quote_plus(DB_CONFIG['password'] or '')
    # MySQL via the PyMySQL driver
    return (
        f"mysql+pymysql://{DB_CONFIG['user']}:{password}"
        f"@{DB_CONFIG['host']}/{DB_CONFIG['database']}"
        f"?charset={DB_CONFIG['charset']}"
    )


def _engine_kwargs(db_url: str) -> dict:
    if db_url.startswith("sqlite"):
        # One shared connection so in-memory databases survive across sessions
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    kwargs = {"pool_pre_ping": True}
    if DB_SSL:
        kwargs["connect_args"] = {"ssl": {"check_hostname": False}}
    return kwargs


db_url = build_database_url()
engine = create_engine(db_url, echo=False, **_engine_kwargs(db_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db():
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind=engine)


@contextmanager
def get_db_session():
    """Context manager for database sessions."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
