import configparser
import shlex
import sys
from collections import namedtuple
from os.path import dirname, isabs, isfile, join
from typing import List, Optional, Tuple

from pandas import read_csv
from tabulate import tabulate

NodeSpec = namedtuple("NodeSpec", ["id", "port"])

DEFAULT_HOST = "0.0.0.0"
DEFAULT_NODES = [NodeSpec(1, 3000), NodeSpec(2, 3001), NodeSpec(3, 3002)]
DEFAULT_EDGES = [(3000, 3001), (3000, 3002), (3001, 3002)]
DEFAULT_COMMAND = "{python} -m MeshNode --port {port} --id {id} --host {host}"
WAIT_MODES = ["sleep", "poll"]


class ConfigError(ValueError):
    pass


def read_node_table(path: str):
    """Read a node table laid out as one row per field and one column per node::

        id,1,2,3
        port,3000,3001,3002
    """
    df = read_csv(path, header=None, index_col=0)
    return df.to_dict()


def nodes_from_table(table: dict) -> List[NodeSpec]:
    nodes = []
    for column, fields in table.items():
        try:
            nodes.append(NodeSpec(int(fields["id"]), int(fields["port"])))
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(
                "Invalid node entry in column {}: {}".format(column, e)
            ) from e
    return nodes


def parse_edges(text: str) -> List[Tuple[int, int]]:
    """Parse ``"3000>3001, 3000>3002"`` into ``[(3000, 3001), (3000, 3002)]``."""
    edges = []
    for item in text.split(","):
        item = item.strip()
        if not item:
            continue
        source, sep, target = item.partition(">")
        if not sep:
            raise ConfigError("Edge '{}' must look like SOURCE>TARGET".format(item))
        try:
            edges.append((int(source), int(target)))
        except ValueError as e:
            raise ConfigError("Edge '{}' is not a pair of ports".format(item)) from e
    return edges


class ClusterConfig:
    def __init__(
        self,
        nodes: Optional[List[NodeSpec]] = None,
        edges: Optional[List[Tuple[int, int]]] = None,
        host: str = DEFAULT_HOST,
        log_dir: str = "logs",
        command: str = DEFAULT_COMMAND,
        wait_mode: str = "poll",
        startup_delay: float = 3.0,
        ready_timeout: float = 30.0,
        poll_interval: float = 0.25,
        request_timeout: float = 5.0,
    ):
        self.nodes = list(DEFAULT_NODES if nodes is None else nodes)
        self.edges = list(DEFAULT_EDGES if edges is None else edges)
        self.host = host
        self.log_dir = log_dir
        self.command = command
        self.wait_mode = wait_mode
        self.startup_delay = startup_delay
        self.ready_timeout = ready_timeout
        self.poll_interval = poll_interval
        self.request_timeout = request_timeout
        self.validate()

    @classmethod
    def from_files(cls, config_file: Optional[str] = None, nodes_file: Optional[str] = None):
        """Build a cluster description from an INI file and a node table.

        Args:
            config_file: INI file with a ``[cluster]`` and an optional
                ``[readiness]`` section. Missing keys keep their defaults.
            nodes_file: CSV node table, overrides ``nodes`` from the INI file.
        Returns:
            ClusterConfig
        Raises:
            ConfigError: if a file is missing or holds invalid values.
        """
        config = configparser.ConfigParser()
        if config_file:
            if not isfile(config_file):
                raise ConfigError("config file not found: {}".format(config_file))
            config.read(config_file)
        for section in ["cluster", "readiness"]:
            if not config.has_section(section):
                config.add_section(section)

        if not nodes_file:
            nodes_file = config.get("cluster", "nodes", fallback=None)
            # a table named in the INI file is relative to that file
            if nodes_file and config_file and not isabs(nodes_file):
                nodes_file = join(dirname(config_file), nodes_file)
        nodes = None
        if nodes_file:
            if not isfile(nodes_file):
                raise ConfigError("node table not found: {}".format(nodes_file))
            nodes = nodes_from_table(read_node_table(nodes_file))
        edges = config.get("cluster", "edges", fallback=None)
        try:
            return cls(
                nodes=nodes,
                edges=parse_edges(edges) if edges is not None else None,
                host=config.get("cluster", "host", fallback=DEFAULT_HOST),
                log_dir=config.get("cluster", "log_dir", fallback="logs"),
                command=config.get(
                    "cluster", "command", fallback=DEFAULT_COMMAND, raw=True
                ),
                wait_mode=config.get("readiness", "wait", fallback="poll"),
                startup_delay=config.getfloat(
                    "readiness", "startup_delay", fallback=3.0
                ),
                ready_timeout=config.getfloat(
                    "readiness", "ready_timeout", fallback=30.0
                ),
                poll_interval=config.getfloat(
                    "readiness", "poll_interval", fallback=0.25
                ),
                request_timeout=config.getfloat(
                    "readiness", "request_timeout", fallback=5.0
                ),
            )
        except ValueError as e:
            if isinstance(e, ConfigError):
                raise
            raise ConfigError(str(e)) from e

    def validate(self):
        if not self.nodes:
            raise ConfigError("Cluster needs at least one node")
        ids = [node.id for node in self.nodes]
        if len(set(ids)) != len(ids):
            raise ConfigError("Node ids must be unique, got {}".format(ids))
        ports = self.ports
        if len(set(ports)) != len(ports):
            raise ConfigError("Node ports must be unique, got {}".format(ports))
        for port in ports:
            if not 0 < port < 65536:
                raise ConfigError("Port {} out of range".format(port))
        for source, target in self.edges:
            if source == target:
                raise ConfigError("Node on port {} cannot connect to itself".format(source))
            for port in (source, target):
                if port not in ports:
                    raise ConfigError("Edge refers to unknown port {}".format(port))
        if self.wait_mode not in WAIT_MODES:
            raise ConfigError(
                "Unknown wait mode '{}', expected one of {}".format(
                    self.wait_mode, WAIT_MODES
                )
            )
        for name in ["startup_delay", "ready_timeout", "poll_interval", "request_timeout"]:
            if getattr(self, name) < 0:
                raise ConfigError("{} must not be negative".format(name))

    @property
    def ports(self) -> List[int]:
        return [node.port for node in self.nodes]

    def log_file(self, port: int) -> str:
        return join(self.log_dir, "node_{:d}.txt".format(port))

    def url(self, port: int, route: str = "") -> str:
        return "http://{}:{:d}/{}".format(self.host, port, route.lstrip("/"))

    def node_command(self, node: NodeSpec) -> List[str]:
        # split first so an interpreter path with spaces stays one argument
        return [
            token.format(
                python=sys.executable, id=node.id, port=node.port, host=self.host
            )
            for token in shlex.split(self.command)
        ]

    def __str__(self):
        rows = [
            ["host", self.host],
            ["nodes", ", ".join("{}@{}".format(n.id, n.port) for n in self.nodes)],
            ["edges", ", ".join("{}>{}".format(s, t) for s, t in self.edges)],
            ["log_dir", self.log_dir],
            ["command", self.command],
            ["wait_mode", self.wait_mode],
            ["startup_delay", self.startup_delay],
            ["ready_timeout", self.ready_timeout],
            ["request_timeout", self.request_timeout],
        ]
        return tabulate(rows)
