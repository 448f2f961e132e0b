import time
from fastapi import FastAPI, Depends, Request
from fastapi.testclient import TestClient

from marketplace.utils.rate_limit import optional_rate_limit, rate_limit_health_info


def _make_app(times=2, seconds=60):
    app = FastAPI()

    @app.get("/limitedA", dependencies=[Depends(optional_rate_limit(times, seconds))])
    def limited_a():
        return {"ok": True}

    @app.get("/limitedB", dependencies=[Depends(optional_rate_limit(times, seconds))])
    def limited_b():
        return {"ok": True}

    @app.get("/rl_info")
    def rl_info(request: Request):
        return rate_limit_health_info(request)

    return app


def test_local_fallback_blocks_after_limit(monkeypatch):
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")
    client = TestClient(_make_app(times=2))

    assert client.get("/limitedA").status_code == 200
    assert client.get("/limitedA").status_code == 200
    assert client.get("/limitedA").status_code == 429


def test_limit_is_per_path_and_token(monkeypatch):
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")
    client = TestClient(_make_app(times=1))
    headers = {"Authorization": "Bearer user-a"}

    assert client.get("/limitedA", headers=headers).status_code == 200
    assert client.get("/limitedA", headers=headers).status_code == 429
    assert client.get("/limitedB", headers=headers).status_code == 200
    assert client.get("/limitedA", headers={"Authorization": "Bearer user-b"}).status_code == 200


def test_window_resets(monkeypatch):
    monkeypatch.setenv("LOCAL_RATE_LIMIT_FALLBACK", "1")
    client = TestClient(_make_app(times=1, seconds=1))
    assert client.get("/limitedA").status_code == 200
    assert client.get("/limitedA").status_code == 429
    time.sleep(1.1)
    assert client.get("/limitedA").status_code == 200


def test_disabled_when_limiter_not_initialised(monkeypatch):
    monkeypatch.delenv("LOCAL_RATE_LIMIT_FALLBACK", raising=False)
    app = _make_app(times=1)
    app.state.rate_limit_enabled = False
    client = TestClient(app)
    for _ in range(3):
        assert client.get("/limitedA").status_code == 200
    assert client.get("/rl_info").json()["enabled"] is False
