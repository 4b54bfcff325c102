"""Tests for RFC 7807 error responses and correlation ids."""
import pytest
from httpx import AsyncClient

from workshop_portal.exceptions import (
    PROBLEM_TYPE_BASE,
    ErrorCode,
    InvalidTransactionError,
    NotAvailableError,
    ValidationError,
)


@pytest.mark.asyncio
async def test_problem_carries_request_id(client: AsyncClient, engineer_headers: dict):
    response = await client.get(
        "/api/v1/items/missing",
        headers={**engineer_headers, "X-Request-ID": "req-123", "X-Correlation-ID": "corr-9"},
    )

    assert response.status_code == 404
    assert response.headers["content-type"].startswith("application/problem+json")
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Correlation-ID"] == "corr-9"
    problem = response.json()
    assert problem["trace_id"] == "req-123"
    assert problem["instance"] == "/api/v1/items/missing"
    assert problem["code"] == ErrorCode.NOT_FOUND.value


@pytest.mark.asyncio
async def test_request_validation_lists_fields(client: AsyncClient, admin_headers: dict):
    response = await client.post(
        "/api/v1/items", json={"kind": "PART", "quantity": 0}, headers=admin_headers
    )

    assert response.status_code == 422
    fields = {error["field"] for error in response.json()["errors"]}
    assert any("name" in field for field in fields)


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["change_feed"] == "poll"


@pytest.mark.parametrize(
    "exc, status, code",
    [
        (NotAvailableError("gone"), 409, ErrorCode.NOT_AVAILABLE),
        (InvalidTransactionError("bad delta"), 409, ErrorCode.INVALID_TRANSACTION),
        (ValidationError("blank", errors=[{"field": "reason", "message": "required"}]), 422, ErrorCode.VALIDATION_ERROR),
    ],
)
def test_problem_detail_fields(exc, status, code):
    problem = exc.to_problem_detail(instance="/api/v1/items/x/claim")
    assert problem.status == status
    assert problem.code == code.value
    assert problem.type == f"{PROBLEM_TYPE_BASE}/{code.value.lower().replace('_', '-')}"
