"""Health check and Prometheus scrape endpoint."""


def test_health_reports_database(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "ok"
    assert body["timestamp"].endswith("Z")


def test_metrics_are_exposed(client, teacher_headers):
    client.get("/api/v1/slots", headers=teacher_headers)

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "lessonbook_service_operations_total" in response.text
