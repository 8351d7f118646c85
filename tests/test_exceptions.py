"""Tests for the error envelope and exception logging."""

import logging

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from oliveflow.middleware.exceptions import (
    BoxNotAvailableError,
    InvariantViolation,
    register_exception_handlers,
)


def _app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/broken-ledger")
    async def broken_ledger():
        raise InvariantViolation("Farmer f-1 would owe -3.000")

    @app.get("/busy-box")
    async def busy_box():
        raise BoxNotAvailableError(["7"])

    return app


@pytest.mark.unit
@pytest.mark.asyncio
class TestExceptionHandlers:

    async def test_invariant_violation_logged_once_and_masked(self, caplog):
        caplog.set_level(logging.ERROR, logger="oliveflow.middleware.exceptions")

        async with AsyncClient(transport=ASGITransport(app=_app()), base_url="http://test") as client:
            response = await client.get("/broken-ledger")

        assert response.status_code == 500
        body = response.json()["error"]
        assert body["code"] == "INVARIANT_VIOLATION"
        assert "-3.000" not in body["message"]

        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert "Farmer f-1 would owe -3.000" in errors[0].getMessage()

    async def test_conflict_keeps_details(self):
        async with AsyncClient(transport=ASGITransport(app=_app()), base_url="http://test") as client:
            response = await client.get("/busy-box")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "BOX_NOT_AVAILABLE"
