import json
from unittest import mock

import pytest
import requests

from MeshNode.app import create_app
from MeshNode.app import routes


@pytest.fixture
def mesh(monkeypatch):
    """Three node apps whose outgoing /ping calls are routed to each other's test clients."""
    apps = {port: create_app(node_id, port=port) for node_id, port in [(1, 3000), (2, 3001), (3, 3002)]}
    clients = {port: app.test_client() for port, app in apps.items()}
    calls = []

    def post(url, json=None, timeout=None):
        calls.append((url, json, timeout))
        port = int(url.split(":")[2].split("/")[0])
        if port not in clients:
            raise requests.ConnectionError("Connection refused")
        res = clients[port].post("/ping", json=json)
        reply = mock.Mock(status_code=res.status_code, text=res.get_data(as_text=True))
        reply.json.side_effect = lambda: res.get_json()
        return reply

    monkeypatch.setattr(routes.requests, "post", post)
    return apps, clients, calls


def test_state(mesh):
    _, clients, _ = mesh
    res = clients[3000].get("/")
    assert res.status_code == 200
    assert res.get_json() == {"id": 1, "addr": "0.0.0.0:3000", "ledger": {}}


def test_ping(mesh):
    apps, clients, _ = mesh
    res = clients[3000].post("/ping", json={"id": "2", "addr": "0.0.0.0:3001"})
    assert res.status_code == 200
    assert res.get_json() == {"id": "1", "addr": "0.0.0.0:3000"}
    assert apps[3000].config["NODE_STATE"].nodes == [{"id": 2, "addr": "0.0.0.0:3001"}]


def test_ping_same_node(mesh):
    _, clients, _ = mesh
    res = clients[3000].post("/ping", json={"id": "1", "addr": "0.0.0.0:3000"})
    assert res.status_code == 400
    assert res.get_json() == {"error": "You can't connect in the same node!"}


def test_ping_twice(mesh):
    _, clients, _ = mesh
    body = {"id": "2", "addr": "0.0.0.0:3001"}
    assert clients[3000].post("/ping", json=body).status_code == 200
    res = clients[3000].post("/ping", json=body)
    assert res.status_code == 400
    assert res.get_json() == {"error": "You're already connected in this node!"}


@pytest.mark.parametrize(
    "body",
    [
        "not json",
        json.dumps({"id": "2"}),
        json.dumps({"id": "two", "addr": "0.0.0.0:3001"}),
        json.dumps({"id": "2", "addr": "nowhere"}),
        json.dumps({"id": None, "addr": "0.0.0.0:3001"}),
        json.dumps({"id": [2], "addr": "0.0.0.0:3001"}),
        json.dumps({"id": "2", "addr": "0.0.0.0:\u00b3"}),
    ],
)
def test_ping_malformed(mesh, body):
    _, clients, _ = mesh
    res = clients[3000].post("/ping", data=body, content_type="application/json")
    assert res.status_code == 400
    assert "error" in res.get_json()


def test_connect(mesh):
    apps, clients, calls = mesh
    res = clients[3000].post("/connect", data="3001")
    assert res.status_code == 200
    assert res.get_data(as_text=True) == "Connected to new voter: 3001!"
    assert calls == [
        ("http://0.0.0.0:3001/ping", {"id": "1", "addr": "0.0.0.0:3000"}, 5.0)
    ]
    assert apps[3000].config["NODE_STATE"].nodes == [{"id": 2, "addr": "0.0.0.0:3001"}]
    assert apps[3001].config["NODE_STATE"].nodes == [{"id": 1, "addr": "0.0.0.0:3000"}]


def test_connect_form_encoded_body(mesh):
    apps, clients, _ = mesh
    res = clients[3000].post(
        "/connect", data="3002", content_type="application/x-www-form-urlencoded"
    )
    assert res.status_code == 200
    assert [n["id"] for n in apps[3000].config["NODE_STATE"].nodes] == [3]


def test_triangle(mesh):
    apps, clients, _ = mesh
    for source, target in [(3000, 3001), (3000, 3002), (3001, 3002)]:
        assert clients[source].post("/connect", data=str(target)).status_code == 200
    for port, app in apps.items():
        peers = sorted(node["id"] for node in app.config["NODE_STATE"].nodes)
        assert len(peers) == 2
        assert app.config["NODE_STATE"].id not in peers


def test_connect_twice(mesh):
    _, clients, _ = mesh
    assert clients[3000].post("/connect", data="3001").status_code == 200
    res = clients[3000].post("/connect", data="3001")
    assert res.status_code == 400
    assert "already connected" in res.get_data(as_text=True)


def test_connect_self(mesh):
    apps, clients, _ = mesh
    res = clients[3000].post("/connect", data="3000")
    assert res.status_code == 400
    assert "same node" in res.get_data(as_text=True)
    assert apps[3000].config["NODE_STATE"].nodes == []


def test_connect_unreachable(mesh):
    _, clients, _ = mesh
    res = clients[3000].post("/connect", data="3999")
    assert res.status_code == 502
    assert "3999" in res.get_json()["error"]


@pytest.mark.parametrize("body", ["", "abc", "70000", "0", "\u00b3", "\u0663\u0660\u0660\u0660"])
def test_connect_bad_body(mesh, body):
    _, clients, calls = mesh
    res = clients[3000].post("/connect", data=body)
    assert res.status_code == 400
    assert calls == []


def test_propose(mesh):
    _, clients, _ = mesh
    res = clients[3000].post("/propose", json={"value": "x"})
    assert res.status_code == 501


def test_peers(mesh):
    _, clients, _ = mesh
    clients[3001].post("/connect", data="3002")
    res = clients[3001].get("/peers")
    assert res.get_json() == [{"id": 3, "addr": "0.0.0.0:3002"}]
