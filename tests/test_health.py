import json
import logging
from datetime import timedelta

import pytest
from fastapi import status

from app.core.logging import CustomJsonFormatter, request_id_var
from app.core.security import create_access_token

def test_health_check(client):
    """Test the /health endpoint returns 200 and up status."""
    response = client.get("/health")
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "up"
    assert "version" in data
    assert "timestamp" in data

def test_readiness_check(client):
    """Test the /readiness endpoint returns 200 and database status."""
    response = client.get("/readiness")
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "ready"
    assert data["components"]["database"] == "connected"

def test_root_endpoint(client):
    """Test the API root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    assert "HRMS Core API" in response.json()["message"]

def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"
    assert "X-Process-Time" in response.headers

def test_missing_token_is_rejected(client):
    response = client.get("/api/leave-balance/me")
    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["errors"][0]["code"] == "AUTH_FAILED"

def test_garbage_token_is_rejected(client):
    response = client.get("/api/leave-balance/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401

@pytest.mark.parametrize("path", ["/api/payroll/999", "/api/leave/requests/999"])
def test_unknown_resource_returns_not_found(client, employee, auth_headers, path):
    response = client.get(path, headers=auth_headers(employee))
    assert response.status_code == 404
    assert response.json()["errors"][0]["code"] == "NOT_FOUND"

def test_expired_token_is_rejected(client, employee):
    token = create_access_token(
        data={"sub": str(employee.id), "role": employee.role.value},
        expires_delta=timedelta(minutes=-5),
    )
    response = client.get("/api/leave-balance/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["errors"][0]["msg"] == "TOKEN_EXPIRED"

def test_token_without_employee_subject_is_rejected(client):
    token = create_access_token(data={"sub": "someone@example.com", "role": "EMPLOYEE"})
    response = client.get("/api/leave-balance/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401

def test_json_log_lines_carry_request_context():
    formatter = CustomJsonFormatter("%(timestamp) %(level) %(name) %(message)")
    record = logging.LogRecord("app.services.leave_service", logging.WARNING, __file__, 1, "Leave 7 rejected", None, None)

    token = request_id_var.set("req-42")
    try:
        line = json.loads(formatter.format(record))
    finally:
        request_id_var.reset(token)

    assert line["message"] == "Leave 7 rejected"
    assert line["level"] == "WARNING"
    assert line["request_id"] == "req-42"
    assert line["service"] == "HRMS Core"
    assert line["env"] == "testing"
    assert line["timestamp"]
