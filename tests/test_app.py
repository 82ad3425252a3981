"""Flask routes, exercised through the test client."""

import pytest

from app import create_app
from config import Config
from conftest import seed_database


@pytest.fixture
def app(tmp_path, monkeypatch, exports_dir):
    monkeypatch.setattr(Config, "SQLALCHEMY_DATABASE_URI", f"sqlite:///{(tmp_path / 'orders.db').as_posix()}")
    application = create_app()
    application.config.update(TESTING=True)
    return application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def order_id(app):
    with app.extensions["session_factory"]() as s:
        return seed_database(s)


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True}


@pytest.mark.parametrize("profile", ["standard", "tape", "label"])
def test_render_each_profile(client, order_id, profile):
    resp = client.get(f"/orders/{order_id}/pdf?profile={profile}")
    assert resp.status_code == 200
    assert resp.mimetype == "application/pdf"
    assert resp.data.startswith(b"%PDF")
    assert "attachment" not in resp.headers.get("Content-Disposition", "")


def test_render_as_download(client, order_id):
    resp = client.get(f"/orders/{order_id}/pdf?download=1")
    assert resp.status_code == 200
    assert "attachment" in resp.headers["Content-Disposition"]
    assert "orden_2025-000123_standard.pdf" in resp.headers["Content-Disposition"]


def test_unknown_profile_is_bad_request(client, order_id):
    assert client.get(f"/orders/{order_id}/pdf?profile=poster").status_code == 400
    assert client.post(f"/orders/{order_id}/pdf/generate?profile=poster").status_code == 400


def test_unknown_order_is_not_found(client, order_id):
    assert client.get("/orders/999/pdf").status_code == 404
    assert client.post("/orders/999/pdf/generate").status_code == 404
    assert client.get("/orders/999/pdf/download").status_code == 404


def test_generate_then_download(client, order_id, exports_dir):
    assert client.get(f"/orders/{order_id}/pdf/download").status_code == 404

    resp = client.post(f"/orders/{order_id}/pdf/generate")
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["profile"] == "standard"
    assert body["path"].startswith(str(exports_dir))

    resp = client.get(f"/orders/{order_id}/pdf/download")
    assert resp.status_code == 200
    assert resp.data.startswith(b"%PDF")
    resp.close()


def test_clear_settings_cache(client):
    resp = client.post("/settings/cache/clear")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "cleared"}
