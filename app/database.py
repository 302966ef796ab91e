from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, sessionmaker

from app.config import settings

# JSONB on postgres, plain JSON elsewhere (sqlite in tests)
JSONDict = JSON().with_variant(JSONB(), "postgresql")
JSONList = JSON().with_variant(JSONB(), "postgresql")

connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create tables that do not exist yet."""
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
