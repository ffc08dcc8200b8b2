from sqlalchemy import create_engine
from contextlib import contextmanager
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from halan.config import settings

# Handle different database URLs
database_url = settings.DATABASE_URL

# Some hosts provide postgres:// but SQLAlchemy needs postgresql://
if database_url.startswith("postgres://"):
    database_url = database_url.replace("postgres://", "postgresql://", 1)

# SQLite doesn't support pool_size and max_overflow
if database_url.startswith("sqlite"):
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False}  # Needed for SQLite
    )
else:
    engine = create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,
        echo=False
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for getting database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope():
    """Short-lived session for long-running handlers such as websockets"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_scope():
    """Dependency handing out ``session_scope`` so handlers open sessions per use"""
    return session_scope


@contextmanager
def atomic(db: Session):
    """Commit everything done inside the block, or nothing"""
    try:
        yield db
        db.commit()
    except BaseException:
        db.rollback()
        raise
