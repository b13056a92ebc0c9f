"""Base utilities for project-scoped background tasks.

Task arguments are JSON: pass ids as UUID strings, never ORM objects.

    project_uuid = validate_project_id(project_id)
    session = get_scoped_session(project_uuid)
    try:
        ...
        session.commit()
    finally:
        session.close()
"""

from uuid import UUID
from sqlalchemy.orm import Session

from database import project_scoped_session, SessionLocal
from models.project import Project


def validate_project_id(project_id: str) -> UUID:
    """Validate that project_id is a valid UUID and references an existing project.

    Args:
        project_id: Project UUID as string (from task parameters)

    Returns:
        UUID: Validated project UUID

    Raises:
        ValueError: If project_id is not a UUID or the project doesn't exist
    """
    try:
        project_uuid = UUID(str(project_id))
    except (ValueError, AttributeError, TypeError) as e:
        raise ValueError(f"Invalid project_id format '{project_id}': {str(e)}")

    session = SessionLocal()
    try:
        if session.get(Project, project_uuid) is None:
            raise ValueError(f"Project {project_id} does not exist")
    finally:
        session.close()

    return project_uuid


def get_scoped_session(project_id: UUID) -> Session:
    """Create a database session tagged with a project for worker tasks.

    Queries must still filter by project_id explicitly; the tag is context
    for logging and sanity checks.
    """
    return project_scoped_session(project_id)
