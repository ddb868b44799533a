from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from dosetrack.core.config import settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # SQLite ignores pool sizing; allow use from Celery/HTTP worker threads
        return {"connect_args": {"check_same_thread": False}}
    # PostgreSQL configuration with connection pooling
    return {
        "pool_size": 20,
        "max_overflow": 30,
        "pool_recycle": 300,  # Recycle connections every 5 minutes
        "pool_pre_ping": True,  # Validate connections before use
        "pool_timeout": 45,
    }


engine = create_engine(settings.SQLALCHEMY_DATABASE_URI, echo=False, **_engine_kwargs(settings.SQLALCHEMY_DATABASE_URI))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
