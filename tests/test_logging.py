import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from structlog.testing import capture_logs

from app.core.logging import log_requests

pytestmark = pytest.mark.asyncio


@pytest.fixture
def logged_app() -> FastAPI:
    app = FastAPI()
    app.middleware("http")(log_requests)

    @app.get("/ok")
    async def ok():
        return {"status": "ok"}

    @app.get("/boom")
    async def boom():
        raise RuntimeError("handler exploded")

    return app


async def test_successful_request_is_logged(logged_app: FastAPI):
    async with AsyncClient(transport=ASGITransport(app=logged_app), base_url="http://test") as ac:
        with capture_logs() as logs:
            response = await ac.get("/ok", params={"q": "1"})

    assert response.status_code == 200
    handled = [entry for entry in logs if entry["event"] == "request_handled"]
    assert len(handled) == 1
    assert handled[0]["path"] == "/ok"
    assert handled[0]["query"] == "q=1"
    assert handled[0]["status_code"] == 200


async def test_failing_handler_is_logged_and_reraised(logged_app: FastAPI):
    async with AsyncClient(transport=ASGITransport(app=logged_app), base_url="http://test") as ac:
        with capture_logs() as logs:
            with pytest.raises(RuntimeError):
                await ac.get("/boom")

    failed = [entry for entry in logs if entry["event"] == "request_failed"]
    assert len(failed) == 1
    assert failed[0]["log_level"] == "error"
    assert failed[0]["method"] == "GET"
    assert failed[0]["path"] == "/boom"
    assert failed[0]["exc_info"] is True
    assert not any(entry["event"] == "request_handled" for entry in logs)
