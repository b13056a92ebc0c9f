"""Pytest fixtures for the PartMatch backend.

Provides reusable test fixtures for:
- Database session on an in-memory SQLite database (tables created per test)
- Project, store item and supplier item factories
- A scripted LLM provider for the AI stage
- A FastAPI test client bound to the test session

Usage:
    def test_exact_match(db_session, project, make_store_item, make_supplier_item):
        make_store_item("AXLCH-8365", line_code="AXL")
        ...
"""

import sys
import os
from pathlib import Path

# Set environment variables BEFORE any imports to ensure they take effect
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("RULE_LEARNING_ASYNC", "false")
os.environ.setdefault("AI_REQUEST_DELAY_SECONDS", "0")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from decimal import Decimal
from typing import Callable, Dict, Generator, List, Optional
from uuid import UUID

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

import database  # noqa: E402
import models  # noqa: E402,F401  (registers every table on Base.metadata)
from models.base import Base  # noqa: E402
from models.project import Project  # noqa: E402
from models.store_item import StoreItem  # noqa: E402
from models.supplier_item import SupplierItem  # noqa: E402
from domain.ai import (  # noqa: E402
    LLMCallMetadata,
    LLMProviderPort,
    LLMServiceError,
    PartEnrichmentResponse,
    PartMatchRequest,
    PartMatchResponse,
    SupersessionResponse,
)
from normalization import derive_manufacturer_part, normalize_line_code, normalize_part_number  # noqa: E402
from normalization import get_alias_cache  # noqa: E402


# One shared in-memory connection so every session sees the same tables
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(test_engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record):
    # pysqlite's own BEGIN handling breaks SAVEPOINT; emit BEGIN ourselves
    dbapi_connection.isolation_level = None


@event.listens_for(test_engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

# Code that opens its own sessions (inline rule learning, workers) uses the test engine too
database.SessionLocal.configure(bind=test_engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test.

    Creates all tables before the test and drops them after.
    Each test gets a clean database state.
    """
    Base.metadata.create_all(bind=test_engine)
    get_alias_cache().invalidate()

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def project(db_session: Session) -> Project:
    """Project with default matching settings."""
    project = Project(name="Test Store")
    db_session.add(project)
    db_session.commit()
    return project


def _keys(part_number: str, line_code: Optional[str]) -> dict:
    return {
        "canonical_part_number": normalize_part_number(part_number),
        "manufacturer_part_canonical": derive_manufacturer_part(part_number, line_code),
        "line_code": normalize_line_code(line_code) or None,
    }


@pytest.fixture
def make_store_item(db_session: Session, project: Project) -> Callable[..., StoreItem]:
    """Factory for store items in the test project (committed)."""

    def _make(part_number: str, line_code: Optional[str] = None, cost=None, **fields) -> StoreItem:
        item = StoreItem(
            project_id=fields.pop("project_id", project.id),
            part_number=part_number,
            cost=Decimal(str(cost)) if cost is not None else None,
            **_keys(part_number, line_code),
            **fields,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _make


@pytest.fixture
def make_supplier_item(db_session: Session, project: Project) -> Callable[..., SupplierItem]:
    """Factory for supplier items; project-scoped unless global_catalog=True."""

    def _make(part_number: str, line_code: Optional[str] = None, cost=None, global_catalog: bool = False,
              **fields) -> SupplierItem:
        item = SupplierItem(
            project_id=None if global_catalog else fields.pop("project_id", project.id),
            part_number=part_number,
            cost=Decimal(str(cost)) if cost is not None else None,
            **_keys(part_number, line_code),
            **fields,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _make


class FakeLLMProvider(LLMProviderPort):
    """Scripted provider: answers are looked up by store part number.

    An answer may be a (suggested_match, confidence) tuple, None for "no
    match", or an exception instance to raise. Supersession answers are
    (replacement_part, manufacturer, confidence) tuples, None or an exception.
    """

    def __init__(self, answers: Optional[Dict[str, object]] = None, cost_micros: int = 1000,
                 attributes: Optional[dict] = None, supersessions: Optional[Dict[str, object]] = None):
        self.answers = answers or {}
        self.cost_micros = cost_micros
        self.attributes = attributes or {}
        self.supersessions = supersessions or {}
        self.requests: List[PartMatchRequest] = []

    def _metadata(self) -> LLMCallMetadata:
        return LLMCallMetadata(
            provider="fake", model="fake-model", tokens_in=10, tokens_out=5,
            latency_ms=12, cost_micros=self.cost_micros,
        )

    def match_part(self, request: PartMatchRequest) -> PartMatchResponse:
        self.requests.append(request)
        answer = self.answers.get(request.identifier)
        if isinstance(answer, Exception):
            raise answer
        if answer is None:
            return PartMatchResponse(
                is_match=False, confidence=0.0, reasoning="unknown part",
                suggested_match=None, metadata=self._metadata(),
            )
        suggested, confidence = answer
        return PartMatchResponse(
            is_match=True, confidence=confidence, reasoning="catalog lookup",
            suggested_match=suggested, metadata=self._metadata(),
        )

    def enrich_part(self, request: PartMatchRequest) -> PartEnrichmentResponse:
        self.requests.append(request)
        if not self.attributes:
            raise LLMServiceError("enrichment unavailable")
        return PartEnrichmentResponse(attributes=self.attributes, confidence=0.8, metadata=self._metadata())

    def find_supersession(self, request: PartMatchRequest) -> SupersessionResponse:
        self.requests.append(request)
        answer = self.supersessions.get(request.identifier)
        if isinstance(answer, Exception):
            raise answer
        if answer is None:
            return SupersessionResponse(
                superseded=False, replacement_part=None, manufacturer=None,
                confidence=0.0, reasoning="still current", metadata=self._metadata(),
            )
        replacement, manufacturer, confidence = answer
        return SupersessionResponse(
            superseded=True, replacement_part=replacement, manufacturer=manufacturer,
            confidence=confidence, reasoning="catalog lists a replacement", metadata=self._metadata(),
        )


@pytest.fixture
def make_provider() -> Callable[..., FakeLLMProvider]:
    """Factory for scripted LLM providers."""
    return FakeLLMProvider


@pytest.fixture
def client(db_session: Session):
    """Test client whose requests share the test session."""
    from fastapi.testclient import TestClient
    from main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[database.get_db] = override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def actor_headers() -> Dict[str, str]:
    return {"X-Actor-Id": "reviewer@example.com"}


@pytest.fixture
def candidates_for(db_session: Session) -> Callable[[UUID], list]:
    """Candidates of one store item, highest confidence first."""
    from sqlalchemy import select
    from models.match_candidate import MatchCandidate

    def _candidates(store_item_id: UUID) -> list:
        return list(
            db_session.execute(
                select(MatchCandidate)
                .where(MatchCandidate.store_item_id == store_item_id)
                .order_by(MatchCandidate.confidence.desc())
            ).scalars().all()
        )

    return _candidates
