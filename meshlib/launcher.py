import logging
import os
import signal
import subprocess
from time import monotonic, sleep
from typing import Dict, List

import requests
from tqdm import tqdm

from .config import ClusterConfig

logger = logging.getLogger("launcher")


class NodeStartupError(RuntimeError):
    def __init__(self, port: int, log_file: str, reason: str):
        super(NodeStartupError, self).__init__(
            "Node on port {:d} {} (see {})".format(port, reason, log_file)
        )
        self.port = port
        self.log_file = log_file


class ConnectResult:
    """Outcome of one ``POST /connect`` call. ``status`` is None if no reply arrived."""

    def __init__(self, source: int, target: int, status=None, text: str = "", error=None):
        self.source = source
        self.target = target
        self.status = status
        self.text = text
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None and self.status is not None and self.status < 400

    def __repr__(self):
        return "ConnectResult({}>{}, status={}, error={})".format(
            self.source, self.target, self.status, self.error
        )


class Cluster:
    def __init__(self, config: ClusterConfig, processes: Dict[int, subprocess.Popen]):
        self.config = config
        self.processes = processes
        self.results: List[ConnectResult] = []

    @property
    def failed(self) -> List[ConnectResult]:
        return [r for r in self.results if not r.ok]

    def terminate(self, timeout: float = 5.0):
        for port, proc in self.processes.items():
            if proc.poll() is None:
                logger.info("terminate node on port %d (pid %d)", port, proc.pid)
                proc.terminate()
        for proc in self.processes.values():
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                proc.kill()

    def attach(self):
        """Block until interrupted, then terminate all nodes."""

        def signal_handler(sig, frame):
            logger.info("Received signal %d, stopping cluster", sig)
            self.terminate()
            raise SystemExit(0)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)
        while any(proc.poll() is None for proc in self.processes.values()):
            sleep(1)
        logger.warning("All nodes exited")


def spawn_nodes(
    config: ClusterConfig, popen=subprocess.Popen, processes: Dict[int, subprocess.Popen] = None
) -> Dict[int, subprocess.Popen]:
    """Start one node process per configured node, output appended to its log file.

    Started processes are added to ``processes`` as they come up, so a caller
    still holds the ones already running when a later launch fails.
    """
    os.makedirs(config.log_dir, exist_ok=True)
    env = dict(os.environ, PYTHONUNBUFFERED="1")
    processes = {} if processes is None else processes
    for node in config.nodes:
        call = config.node_command(node)
        logger.debug("spawn %s", " ".join(call))
        with open(config.log_file(node.port), "ab") as log:
            processes[node.port] = popen(
                call,
                stdout=log,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                env=env,
                start_new_session=True,
            )
        logger.info(
            "started node %d on port %d (pid %d)",
            node.id,
            node.port,
            processes[node.port].pid,
        )
    return processes


def is_ready(config: ClusterConfig, port: int, http=requests) -> bool:
    try:
        response = http.get(config.url(port), timeout=config.request_timeout)
    except requests.RequestException:
        return False
    return response.status_code == 200


def wait_until_ready(config: ClusterConfig, processes: Dict[int, subprocess.Popen], http=requests):
    """Wait for every node according to ``config.wait_mode``.

    ``sleep`` waits a fixed ``startup_delay``. ``poll`` queries ``GET /`` on
    each node until it answers 200.

    Raises:
        NodeStartupError: a node exited or did not answer within ``ready_timeout``.
    """
    if config.wait_mode == "sleep":
        logger.info("waiting %.1fs for nodes to start", config.startup_delay)
        sleep(config.startup_delay)
        return

    deadline = monotonic() + config.ready_timeout
    pending = list(config.nodes)
    with tqdm(total=len(pending), desc="waiting for nodes", leave=False) as pbar:
        while pending:
            for node in list(pending):
                code = processes[node.port].poll()
                if code is not None:
                    raise NodeStartupError(
                        node.port,
                        config.log_file(node.port),
                        "exited with code {}".format(code),
                    )
                if is_ready(config, node.port, http=http):
                    logger.debug("node %d on port %d is ready", node.id, node.port)
                    pending.remove(node)
                    pbar.update(1)
            if not pending:
                break
            if monotonic() > deadline:
                node = pending[0]
                raise NodeStartupError(
                    node.port,
                    config.log_file(node.port),
                    "not ready after {:.1f}s".format(config.ready_timeout),
                )
            sleep(config.poll_interval)


def connect(config: ClusterConfig, source: int, target: int, http=requests) -> ConnectResult:
    """Ask the node on ``source`` to open a peer link to the node on ``target``."""
    try:
        response = http.post(
            config.url(source, "connect"),
            data=str(target),
            timeout=config.request_timeout,
        )
    except requests.RequestException as e:
        logger.warning("connect %d -> %d failed: %s", source, target, e)
        return ConnectResult(source, target, error=e)
    result = ConnectResult(source, target, status=response.status_code, text=response.text)
    if result.ok:
        logger.info("connect %d -> %d: %s", source, target, result.text)
    else:
        logger.warning(
            "connect %d -> %d answered %d: %s", source, target, result.status, result.text
        )
    return result


def connect_mesh(config: ClusterConfig, http=requests) -> List[ConnectResult]:
    return [connect(config, source, target, http=http) for source, target in config.edges]


def start_cluster(config: ClusterConfig, popen=subprocess.Popen, http=requests) -> Cluster:
    """Spawn all nodes, wait for them and wire the mesh.

    Nodes that were already started are terminated if a launch or readiness fails.
    """
    cluster = Cluster(config, {})
    try:
        spawn_nodes(config, popen=popen, processes=cluster.processes)
        wait_until_ready(config, cluster.processes, http=http)
    except Exception:
        cluster.terminate()
        raise
    cluster.results = connect_mesh(config, http=http)
    return cluster
