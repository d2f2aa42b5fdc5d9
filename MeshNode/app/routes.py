import logging

import requests
from flask import Blueprint, current_app, jsonify, request

from .state import PeerError

main_routes = Blueprint("main_routes", __name__)
logger = logging.getLogger("MeshNode")


def _state():
    return current_app.config["NODE_STATE"]


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def parse_peer(payload) -> tuple:
    """Validate a ``{"id": "2", "addr": "0.0.0.0:3001"}`` payload.

    Raises:
        ValueError: on a missing field, a non numeric id or a malformed address.
    """
    if not isinstance(payload, dict) or "id" not in payload or "addr" not in payload:
        raise ValueError("Expected a JSON object with 'id' and 'addr'")
    try:
        node_id = int(payload["id"])
    except (TypeError, ValueError) as e:
        raise ValueError("Invalid node id '{}'".format(payload["id"])) from e
    addr = str(payload["addr"])
    host, sep, port = addr.rpartition(":")
    if not sep or not host or not (port.isascii() and port.isdecimal()):
        raise ValueError("Invalid address '{}'".format(addr))
    return node_id, addr


@main_routes.route("/", methods=["GET"])
def node_state():
    state = _state()
    logger.debug("[/] State: %r", state)
    return jsonify(state.describe())


@main_routes.route("/peers", methods=["GET"])
def peers():
    return jsonify(_state().nodes)


@main_routes.route("/ping", methods=["POST"])
def ping():
    state = _state()
    try:
        node_id, addr = parse_peer(request.get_json(force=True, silent=True))
    except ValueError as e:
        return _error(str(e), 400)
    try:
        state.add_peer(node_id, addr)
    except PeerError as e:
        return _error(str(e), 400)
    logger.info("[/ping] updated state: %r", state)
    return jsonify(state.identity())


@main_routes.route("/connect", methods=["POST"])
def connect():
    state = _state()
    value = request.get_data(as_text=True).strip()
    if not value.isascii() or not value.isdecimal() or not 0 < int(value) < 65536:
        return _error("Body must be the port of the peer, got '{}'".format(value), 400)

    url = "http://{}:{}/ping".format(current_app.config["PEER_HOST"], value)
    try:
        res = requests.post(
            url, json=state.identity(), timeout=current_app.config["REQUEST_TIMEOUT"]
        )
    except requests.RequestException as e:
        logger.warning("[/connect] could not reach %s: %s", url, e)
        return _error("Could not reach node on port {}: {}".format(value, e), 502)

    if res.status_code >= 400:
        return res.text, 400

    try:
        node_id, addr = parse_peer(res.json())
    except ValueError as e:
        return _error("Invalid reply from port {}: {}".format(value, e), 502)
    try:
        state.add_peer(node_id, addr)
    except PeerError as e:
        return _error(str(e), 400)
    logger.info("[/connect] sync new node: %s - ID: %d", addr, node_id)
    return "Connected to new voter: {}!".format(value), 200


@main_routes.route("/propose", methods=["POST"])
def propose():
    return _error("Proposals are not implemented", 501)
