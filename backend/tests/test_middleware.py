from fastapi import FastAPI
from fastapi.testclient import TestClient

from timetabler.core.middleware import RequestSizeLimitMiddleware, RequestTimingMiddleware


def make_client(max_bytes):
    app = FastAPI()
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=max_bytes)
    app.add_middleware(RequestTimingMiddleware)

    @app.post("/echo")
    def echo(payload: dict) -> dict:
        return payload

    return TestClient(app)


def test_small_request_passes_with_timing_header():
    response = make_client(1024).post("/echo", json={"level": 1})
    assert response.status_code == 200
    assert response.json() == {"level": 1}
    assert int(response.headers["X-Process-Time-Ms"]) >= 0


def test_large_request_is_rejected():
    response = make_client(10).post("/echo", json={"prompt": "x" * 100})
    assert response.status_code == 413
    assert response.json()["message"] == "Request body too large"
    assert response.json()["details"]["max_bytes"] == 10
