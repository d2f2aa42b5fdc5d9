import logging

from flask import Flask

from .routes import main_routes
from .state import NodeState

logging.getLogger().setLevel(logging.INFO)


def create_app(
    node_id: int,
    host: str = "0.0.0.0",
    port: int = 3000,
    peer_host: str = None,
    request_timeout: float = 5.0,
    debug=False,
) -> Flask:
    """Create flask application.

    Args:
         node_id: ID used to identify this node.
         host: interface the node listens on, reported in its address.
         port: port the node listens on.
         peer_host: host used to reach other nodes, defaults to ``host``.
         request_timeout: seconds to wait for a peer's ``/ping`` reply.
         debug: debug mode flag.
    Returns:
         app : Flask App instance.
    """
    app = Flask(__name__)
    app.debug = debug

    app.config["NODE_STATE"] = NodeState(node_id, "{}:{}".format(host, port))
    app.config["PEER_HOST"] = peer_host or host
    app.config["REQUEST_TIMEOUT"] = request_timeout

    app.register_blueprint(main_routes, url_prefix=r"/")

    return app
