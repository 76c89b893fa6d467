# backend/tests/routes/test_admin_and_health_routes.py
JOBS_URL = "/api/v1/admin/background-jobs"


class TestAdminBackgroundJobs:
    def test_teachers_are_refused(self, client, teacher_headers):
        response = client.post(f"{JOBS_URL}/generate-invoices", json={"month": "2030-01"}, headers=teacher_headers)
        assert response.status_code == 403
        assert response.json()["code"] == "ADMIN_REQUIRED"

    def test_generate_invoices_for_month(self, client, admin_headers):
        response = client.post(f"{JOBS_URL}/generate-invoices", json={"month": "2030-01"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"month": "2030-01", "invoicesCreated": 0, "errors": []}

    def test_bad_month_rejected(self, client, admin_headers):
        response = client.post(f"{JOBS_URL}/generate-invoices", json={"month": "2030-13"}, headers=admin_headers)
        assert response.status_code == 400

    def test_generate_lessons(self, client, admin_headers):
        response = client.post(f"{JOBS_URL}/generate-lessons", json={"weeks": 2}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["lessonsGenerated"] == 0

    def test_history_and_health(self, client, admin_headers):
        client.post(f"{JOBS_URL}/generate-lessons", headers=admin_headers)

        history = client.get(f"{JOBS_URL}/history", headers=admin_headers).json()
        assert history[0]["jobName"] == "generate_future_lessons"

        health = client.get(f"{JOBS_URL}/health", headers=admin_headers).json()
        assert health == {"isHealthy": True, "issues": [], "suggestions": []}

    def test_cleanup(self, client, admin_headers):
        response = client.post(f"{JOBS_URL}/cleanup", json={"retentionDays": 30}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == {"deleted": 0}


def test_health_probe(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "ok"


def test_prometheus_metrics_exposed(client):
    response = client.get("/metrics/prometheus")
    assert response.status_code == 200
    assert "lessonbook_" in response.text
