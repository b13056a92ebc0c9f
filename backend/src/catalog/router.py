"""Project and catalog import API endpoints"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from uuid import UUID
import logging

from auth.dependencies import get_actor_id
from database import get_db
from models.project import Project
from .schemas import ImportRequest, ImportResult, BackfillResult, ProjectCreate, ProjectResponse
from .import_service import CatalogImportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/catalog", tags=["catalog"])


def _get_project(db: Session, project_id: UUID) -> Project:
    project = db.get(Project, project_id)
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Project {project_id} not found")
    return project


# ============================================================================
# Projects
# ============================================================================

@router.post("/projects", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    project = Project(created_by=actor_id, **payload.model_dump())
    db.add(project)
    db.commit()
    db.refresh(project)
    logger.info("Project created", extra={"project_id": project.id})
    return project


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(project_id: UUID, db: Session = Depends(get_db)):
    return _get_project(db, project_id)


# ============================================================================
# Imports
# ============================================================================

@router.post("/projects/{project_id}/store-items/import", response_model=ImportResult)
def import_store_items(
    project_id: UUID,
    payload: ImportRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """
    Import already-parsed store inventory rows.

    Malformed rows are skipped and reported; they never abort the batch.
    """
    _get_project(db, project_id)
    return CatalogImportService(db, project_id).import_store_items(payload.rows)


@router.post("/projects/{project_id}/supplier-items/import", response_model=ImportResult)
def import_supplier_items(
    project_id: UUID,
    payload: ImportRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """Import supplier catalog rows into the project, or the global catalog when project_scoped is false."""
    _get_project(db, project_id)
    return CatalogImportService(db, project_id).import_supplier_items(payload.rows, payload.project_scoped)


@router.post("/projects/{project_id}/interchanges/import", response_model=ImportResult)
def import_interchanges(
    project_id: UUID,
    payload: ImportRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    _get_project(db, project_id)
    return CatalogImportService(db, project_id).import_interchanges(payload.rows, payload.project_scoped)


@router.post("/projects/{project_id}/line-code-aliases/import", response_model=ImportResult)
def import_line_code_aliases(
    project_id: UUID,
    payload: ImportRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """Import line code aliases. The alias cache for the owning scope is invalidated."""
    _get_project(db, project_id)
    return CatalogImportService(db, project_id).import_line_code_aliases(payload.rows, payload.project_scoped)


@router.post("/projects/{project_id}/normalization/backfill", response_model=BackfillResult)
def backfill_normalization(
    project_id: UUID,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    _get_project(db, project_id)
    return CatalogImportService(db, project_id).backfill_normalization()
