"""Integration tests for the HTTP API

Walks one project through the whole flow over the test client:
- Project creation and catalog imports
- Job creation, chunked processing and cancellation
- Review decisions feeding rule learning
- Vendor action rules
- Health and metrics endpoints
"""

from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from jobs import JobOrchestrator


@pytest.fixture
def api_project(client: TestClient, actor_headers):
    response = client.post("/api/v1/catalog/projects", json={"name": "Main Street Auto"}, headers=actor_headers)
    assert response.status_code == 201
    return response.json()


def _import(client, actor_headers, project_id, kind, rows, project_scoped=True):
    response = client.post(
        f"/api/v1/catalog/projects/{project_id}/{kind}/import",
        json={"rows": rows, "project_scoped": project_scoped},
        headers=actor_headers,
    )
    assert response.status_code == 200
    return response.json()


class TestActorHeader:
    """Test write endpoints require an actor"""

    def test_missing_actor_rejected(self, client: TestClient):
        """Test writes without X-Actor-Id return 401"""
        response = client.post("/api/v1/catalog/projects", json={"name": "Nobody's Store"})
        assert response.status_code == 401

    def test_reads_do_not_need_actor(self, client: TestClient, api_project):
        """Test GET endpoints are open"""
        response = client.get(f"/api/v1/catalog/projects/{api_project['id']}")
        assert response.status_code == 200
        assert response.json()["created_by"] == "reviewer@example.com"


class TestMatchingFlow:
    """Test import -> job -> review -> rules over HTTP"""

    def test_import_reports_bad_rows(self, client: TestClient, actor_headers, api_project):
        """Test malformed rows are skipped and counted"""
        result = _import(client, actor_headers, api_project["id"], "store-items", [
            {"part_number": "AXLCH-8365", "line_code": "AXL"},
            {"part_number": ""},
            {"part_number": "--"},
        ])
        assert result["total_rows"] == 3
        assert result["imported_count"] == 1
        assert result["error_count"] == 2
        assert [e["row"] for e in result["errors"]] == [2, 3]

    def test_job_review_and_learning(self, client: TestClient, actor_headers, api_project, db_session):
        """Test an exact job proposes a match and rejecting it learns a block rule"""
        project_id = api_project["id"]
        _import(client, actor_headers, project_id, "store-items", [{"part_number": "AXLCH-8365", "line_code": "AXL"}])
        _import(client, actor_headers, project_id, "supplier-items", [
            {"part_number": "XBOAXLCH8365", "line_code": "XBO", "brand": "AXLETECH"},
        ])

        response = client.post("/api/v1/jobs", json={"project_id": project_id, "job_type": "exact"}, headers=actor_headers)
        assert response.status_code == 201
        job = response.json()
        assert job["status"] == "pending"
        assert job["total_items"] == 1

        orchestrator = JobOrchestrator(db_session)
        for _ in range(10):
            if orchestrator.advance_job(UUID(job["id"])).done:
                break

        job = client.get(f"/api/v1/jobs/{job['id']}").json()
        assert job["status"] == "completed"
        assert job["matches_found"] == 1
        assert job["progress_percentage"] == 100.0

        [candidate] = client.get(f"/api/v1/review/projects/{project_id}/candidates").json()
        assert candidate["method"] == "LINE_PART"
        assert candidate["target_part_number"] == "XBOAXLCH8365"

        response = client.post(
            f"/api/v1/review/candidates/{candidate['id']}/decision",
            json={"decision": "REJECT", "reason": "different axle"},
            headers=actor_headers,
        )
        assert response.status_code == 200
        assert response.json()["succeeded"] == 1

        rules = client.get("/api/v1/rules/master", params={"rule_type": "NEGATIVE_BLOCK"}).json()
        assert [(r["store_part_number"], r["supplier_part_number"]) for r in rules] == [
            ("AXLCH-8365", "XBOAXLCH8365")
        ]

        stats = client.get(f"/api/v1/review/projects/{project_id}/stats").json()
        assert stats["by_status"]["REJECTED"] == 1

    def test_unknown_candidate_decision(self, client: TestClient, actor_headers):
        """Test deciding a missing candidate returns 404"""
        response = client.post(
            "/api/v1/review/candidates/00000000-0000-0000-0000-000000000000/decision",
            json={"decision": "CONFIRM"},
            headers=actor_headers,
        )
        assert response.status_code == 404

    def test_cancel_job(self, client: TestClient, actor_headers, api_project):
        """Test cancellation is recorded on a pending job"""
        job = client.post(
            "/api/v1/jobs", json={"project_id": api_project["id"], "job_type": "full"}, headers=actor_headers
        ).json()

        response = client.post(f"/api/v1/jobs/{job['id']}/cancel", headers=actor_headers)
        assert response.status_code == 200
        assert response.json()["cancellation_requested"] is True

        listed = client.get("/api/v1/jobs", params={"project_id": api_project["id"]}).json()
        assert listed["total"] == 1

    def test_job_for_unknown_project(self, client: TestClient, actor_headers):
        """Test job creation 404s for a missing project"""
        response = client.post(
            "/api/v1/jobs",
            json={"project_id": "00000000-0000-0000-0000-000000000000", "job_type": "exact"},
            headers=actor_headers,
        )
        assert response.status_code == 404

    def test_tick_fires_active_jobs(self, client: TestClient, actor_headers, api_project, monkeypatch):
        """Test the scheduler tick fires each project's oldest active job"""
        fired = []
        monkeypatch.setattr("jobs.router.fire_job", fired.append)
        job = client.post(
            "/api/v1/jobs", json={"project_id": api_project["id"], "job_type": "exact"}, headers=actor_headers
        ).json()

        response = client.post("/api/v1/jobs/tick")

        assert response.json()["count"] == 1
        assert [str(job_id) for job_id in fired] == [job["id"]]


class TestVendorActionAPI:
    """Test vendor action rule endpoints"""

    def test_create_and_evaluate(self, client: TestClient, actor_headers, api_project):
        """Test the most specific rule wins in ad-hoc evaluation"""
        for category, subcategory, action in (("Brakes", "*", "REBOX"), ("Brakes", "Pads", "LIFT")):
            response = client.post(
                "/api/v1/vendor-actions/rules",
                json={"supplier_line_code": "linea", "category_pattern": category,
                      "subcategory_pattern": subcategory, "action": action},
                headers=actor_headers,
            )
            assert response.status_code == 201

        response = client.post("/api/v1/vendor-actions/evaluate", json={
            "project_id": api_project["id"], "line_code": "LINEA", "category": "brakes", "subcategory": "pads",
        })

        assert response.json() == {"action": "LIFT"}


class TestObservabilityEndpoints:
    """Test health and metrics"""

    def test_health_degraded_without_broker(self, client: TestClient):
        """Test an unreachable broker degrades health but keeps serving"""
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["components"]["database"]["status"] == "healthy"
        assert body["status"] in ("healthy", "degraded")

    def test_metrics_exposed(self, client: TestClient):
        """Test the Prometheus endpoint lists matching metrics"""
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "partmatch_" in response.text

    def test_request_id_echoed(self, client: TestClient):
        """Test every response carries a request id"""
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.headers.get("X-Request-ID")
