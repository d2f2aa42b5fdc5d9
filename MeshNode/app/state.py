import threading


class PeerError(ValueError):
    pass


class NodeState:
    """Identity, ledger and known peers of one mesh node."""

    def __init__(self, node_id: int, addr: str):
        self.id = node_id
        self.addr = addr
        self.ledger = {}
        self._nodes = []
        self._lock = threading.Lock()

    def describe(self) -> dict:
        with self._lock:
            return {
                "id": self.id,
                "addr": self.addr,
                "ledger": {str(k): v for k, v in self.ledger.items()},
            }

    def identity(self) -> dict:
        return {"id": str(self.id), "addr": self.addr}

    @property
    def nodes(self):
        with self._lock:
            return [dict(node) for node in self._nodes]

    def add_peer(self, node_id: int, addr: str):
        """Register a peer.

        Raises:
            PeerError: if ``node_id`` is this node or already registered.
        """
        if node_id == self.id:
            raise PeerError("You can't connect in the same node!")
        with self._lock:
            if any(node["id"] == node_id for node in self._nodes):
                raise PeerError("You're already connected in this node!")
            self._nodes.append({"id": node_id, "addr": addr})

    def __repr__(self):
        return "NodeState(id={}, addr={}, nodes={})".format(
            self.id, self.addr, self.nodes
        )
