import logging

from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from dailyprep.core.config import settings
from dailyprep.core.errors import UpstreamError

logger = logging.getLogger(__name__)

engine = create_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO, future=True, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    """Create tables if they don't exist. Production deployments run migrations instead."""
    from dailyprep.models import orm  # noqa: F401  registers the mappers

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables ensured")


def insert_for(db: Session, model):
    """Dialect-specific INSERT supporting ON CONFLICT clauses."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise UpstreamError(f"Unsupported database dialect: {dialect}")
