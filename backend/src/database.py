"""Database session factory and configuration.

Provides database connectivity and session management for the PartMatch
backend. Includes a project-scoped session factory for background workers.
"""

from typing import Generator
from uuid import UUID

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from config import get_settings

DATABASE_URL = get_settings().DATABASE_URL

# Pool settings only apply to PostgreSQL (not SQLite)
_engine_kwargs = {
    "pool_pre_ping": True,  # Verify connections before using
    "echo": False,
}

if not DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["pool_size"] = 5
    _engine_kwargs["max_overflow"] = 10

engine = create_engine(DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI endpoints.

    Usage:
        @app.get("/projects")
        def list_projects(db: Session = Depends(get_db)):
            return db.query(Project).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def project_scoped_session(project_id: UUID) -> Session:
    """Create a database session tagged with a project.

    The project_id is stored in session.info["project_id"] so worker code
    and log statements can pick it up without threading it through every call.

    Args:
        project_id: Project UUID this session works on

    Returns:
        Session: SQLAlchemy session with project context
    """
    session = SessionLocal()
    session.info["project_id"] = project_id
    return session
