"""
Tests for the board JSON API (Flask test client over a FakeRemote-backed controller).
"""

import asyncio

import pytest

from orderboard.board_server import create_app
from orderboard.remote import RemoteError


@pytest.fixture
def app(controller):
    asyncio.run(controller.load())
    return create_app(controller)


@pytest.fixture
def client(app):
    return app.test_client()


def column(board, status):
    for col in board["columns"]:
        if col["id"] == status:
            return col
    raise KeyError(status)


class TestRead:

    def test_board(self, client):
        resp = client.get("/api/board")
        assert resp.status_code == 200
        data = resp.get_json()
        assert len(data["columns"]) == 12
        assert [o["id"] for o in column(data, "FAZER")["orders"]] == ["A", "C"]
        assert column(data, "APROVACAO")["count"] == 1
        assert data["stats"]["total"] == 3
        assert data["phase"] == "ready"
        assert data["error"] is None

    def test_get_order(self, client):
        data = client.get("/api/orders/B").get_json()
        assert data["order"]["status"] == "APROVACAO"

    def test_get_unknown_order(self, client):
        assert client.get("/api/orders/nope").status_code == 404

    def test_health(self, client):
        data = client.get("/health").get_json()
        assert data["status"] == "ok"
        assert data["authenticated"] is True


class TestWrite:

    def test_move_order(self, client):
        resp = client.post("/api/orders/A/status", json={"status": "APROVACAO", "comment": "ok"})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["ok"] is True
        assert body["order"]["status"] == "APROVACAO"
        assert body["order"]["history"][-1]["comment"] == "ok"
        board = client.get("/api/board").get_json()
        assert [o["id"] for o in column(board, "FAZER")["orders"]] == ["C"]

    def test_move_invalid_status(self, client):
        assert client.post("/api/orders/A/status", json={"status": "LIMBO"}).status_code == 400

    def test_move_unknown_order(self, client):
        assert client.post("/api/orders/zz/status", json={"status": "AJUSTE"}).status_code == 404

    def test_move_failure_reports_reloaded_state(self, client, remote):
        remote.fail["update_status"] = RemoteError("nope")
        body = client.post("/api/orders/A/status", json={"status": "AJUSTE"}).get_json()
        assert body["ok"] is False
        assert body["order"]["status"] == "FAZER"

    def test_create(self, client):
        resp = client.post("/api/orders", json={"title": "Adesivos", "status": "AJUSTE"})
        assert resp.status_code == 201
        order_id = resp.get_json()["id"]
        board = client.get("/api/board").get_json()
        assert [o["id"] for o in column(board, "AJUSTE")["orders"]] == [order_id]

    def test_create_requires_title(self, client):
        assert client.post("/api/orders", json={"status": "AJUSTE"}).status_code == 400

    def test_create_remote_failure(self, client, remote):
        remote.fail["create"] = RemoteError("down")
        assert client.post("/api/orders", json={"title": "X"}).status_code == 502

    def test_comment(self, client):
        resp = client.post("/api/orders/B/comments", json={"comment": "arte enviada"})
        assert resp.get_json()["order"]["comments"][-1]["text"] == "arte enviada"

    def test_update_fields(self, client):
        resp = client.put("/api/orders/C", json={"title": "Banners", "assignedTo": "ana"})
        order = resp.get_json()["order"]
        assert order["title"] == "Banners"
        assert order["assignedTo"] == "ana"

    @pytest.mark.parametrize("body", [
        {"customer": "Loja X"},
        {"products": 5},
        {"labels": "abc"},
        {"status": "LIMBO"},
    ])
    def test_update_rejects_malformed_fields(self, client, remote, body):
        resp = client.put("/api/orders/A", json=body)
        assert resp.status_code == 400
        assert not [c for c in remote.calls if c[0] == "update_order"]
        board = client.get("/api/board")
        assert board.status_code == 200
        assert client.get("/api/orders/A").get_json()["order"]["customer"]["name"] == "Gráfica Central"

    def test_update_without_fields(self, client):
        assert client.put("/api/orders/C", json={"bogus": 1}).status_code == 400

    def test_reorder(self, client):
        resp = client.post("/api/columns/FAZER/reorder", json={"order_ids": ["C", "A"]})
        assert resp.status_code == 200
        assert [o["id"] for o in resp.get_json()["column"]["orders"]] == ["C", "A"]

    def test_reorder_mismatch(self, client):
        resp = client.post("/api/columns/FAZER/reorder", json={"order_ids": ["C"]})
        assert resp.status_code == 409

    def test_reload(self, client):
        assert client.post("/api/reload").get_json()["ok"] is True

    def test_notifications(self, client):
        client.post("/api/orders/A/status", json={"status": "AJUSTE"})
        data = client.get("/api/notifications").get_json()
        assert data["notifications"][0]["kind"] == "success"


class TestApiKey:

    def test_missing_key_rejected(self, controller):
        client = create_app(controller, api_secret="s3cret").test_client()
        assert client.post("/api/reload").status_code == 401

    def test_wrong_key_rejected(self, controller):
        client = create_app(controller, api_secret="s3cret").test_client()
        assert client.post("/api/reload", headers={"X-API-Key": "nope"}).status_code == 403

    def test_valid_key(self, controller):
        client = create_app(controller, api_secret="s3cret").test_client()
        resp = client.post("/api/reload", headers={"X-API-Key": "s3cret"})
        assert resp.status_code == 200

    def test_reads_need_no_key(self, controller):
        client = create_app(controller, api_secret="s3cret").test_client()
        assert client.get("/api/board").status_code == 200
