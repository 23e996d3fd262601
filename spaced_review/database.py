from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from spaced_review.config import settings


def make_engine(database_url: str):
    """Create an engine; SQLite connections are shared with the CLI thread"""
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(database_url, pool_pre_ping=True)


engine = make_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db(bind=None):
    """Create all tables"""
    # Import models so they register on Base.metadata
    import spaced_review.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db():
    """Yield a database session and always close it"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
