#!/bin/env python

"""Mesh Node is a Flask based application holding a ledger and the list of
peers it was connected to through ``/connect``."""

from gevent import monkey

monkey.patch_all()

import argparse
import logging
import os

from gevent import pywsgi

from .app import create_app

parser = argparse.ArgumentParser(description="Run a mesh node.")

parser.add_argument(
    "--port",
    "-p",
    type=int,
    help="Port number of the node, e.g. --port=3000. Default is os.environ.get('MESH_NODE_PORT', 3000).",
    default=os.environ.get("MESH_NODE_PORT", 3000),
)

parser.add_argument(
    "--host",
    type=str,
    help="Mesh node host, e.g. --host=0.0.0.0. Default is os.environ.get('MESH_NODE_HOST','0.0.0.0').",
    default=os.environ.get("MESH_NODE_HOST", "0.0.0.0"),
)

parser.add_argument(
    "--id",
    type=int,
    help="Mesh node ID, e.g. --id=1. Default is os.environ.get('MESH_NODE_ID', None).",
    default=os.environ.get("MESH_NODE_ID", None),
)

parser.add_argument(
    "--peer_host",
    type=str,
    help="Host used to reach other nodes on /connect. Defaults to --host.",
    default=None,
)

parser.add_argument(
    "--timeout",
    type=float,
    help="Seconds to wait for a peer to answer /ping.",
    default=5.0,
)

if __name__ == "__main__":
    args = parser.parse_args()
    if args.id is None:
        parser.error("a node id is required, use --id or MESH_NODE_ID")

    logging.basicConfig(format="%(asctime)s | %(message)s", level=logging.INFO)

    app = create_app(
        node_id=args.id,
        host=args.host,
        port=args.port,
        peer_host=args.peer_host,
        request_timeout=args.timeout,
    )
    print("Starting new node: http://{}:{}".format(args.host, args.port), flush=True)

    server = pywsgi.WSGIServer((args.host, args.port), app)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("Keyboard Interrupt. Exiting")
        exit(0)
