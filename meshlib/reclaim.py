import logging
import os
import shutil
from os.path import isdir, isfile, islink, join
from typing import Callable, Dict, Iterable, List, Optional

import psutil

logger = logging.getLogger("reclaim")


def find_listeners(port: int) -> List[int]:
    """Return the pids of processes listening on the given TCP port."""
    pids = set()
    try:
        connections = psutil.net_connections(kind="tcp")
    except psutil.AccessDenied:
        # some platforms only expose the system wide table to root
        return _find_listeners_per_process(port)
    for conn in connections:
        if (
            conn.pid
            and conn.laddr
            and conn.laddr.port == port
            and conn.status == psutil.CONN_LISTEN
        ):
            pids.add(conn.pid)
    return sorted(pids)


def _find_listeners_per_process(port: int) -> List[int]:
    pids = set()
    for proc in psutil.process_iter(["pid"]):
        try:
            for conn in proc.net_connections(kind="tcp"):
                if conn.laddr and conn.laddr.port == port and conn.status == psutil.CONN_LISTEN:
                    pids.add(proc.pid)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return sorted(pids)


def terminate(pids: Iterable[int], force: bool = False, grace: float = 3.0) -> List[int]:
    """Send SIGTERM to every pid, optionally SIGKILL whatever survives ``grace`` seconds.

    Returns the pids that were signalled.
    """
    signalled = []
    for pid in pids:
        if pid == os.getpid():
            logger.warning("Refusing to kill own process %d", pid)
            continue
        try:
            proc = psutil.Process(pid)
            proc.terminate()
        except psutil.NoSuchProcess:
            logger.warning("Process %d already exited", pid)
            continue
        except psutil.AccessDenied:
            logger.warning("Permission denied to kill process %d", pid)
            continue
        signalled.append(proc)
    if force and signalled:
        _, alive = psutil.wait_procs(signalled, timeout=grace)
        for proc in alive:
            logger.info("Process %d ignored SIGTERM, killing it", proc.pid)
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                pass
    return [proc.pid for proc in signalled]


def reclaim_ports(ports: Iterable[int], force: bool = False, grace: float = 3.0) -> Dict[int, List[int]]:
    reclaimed = {}
    for port in ports:
        pids = find_listeners(port)
        if pids:
            logger.info(
                "Killing process %s on port %d", " ".join(str(p) for p in pids), port
            )
            reclaimed[port] = terminate(pids, force=force, grace=grace)
        else:
            logger.info("No process found on port %d", port)
            reclaimed[port] = []
    logger.info("All specified ports have been processed.")
    return reclaimed


def confirm(question: str, input_fn: Callable[[str], str] = input) -> bool:
    try:
        answer = input_fn("{} [y/N] ".format(question))
    except EOFError:
        # no terminal attached, treat as a "no"
        return False
    return answer.strip().lower() in ["y", "yes"]


def clear_log_dir(
    log_dir: str, assume_yes: bool = False, input_fn: Callable[[str], str] = input
) -> Optional[int]:
    """Delete everything inside ``log_dir`` but keep the directory itself.

    Args:
        log_dir: directory holding the node log files.
        assume_yes: skip the confirmation prompt.
        input_fn: prompt function, swapped out in tests.
    Returns:
        Number of removed entries, or None if the user aborted.
    """
    if not isdir(log_dir):
        logger.debug("No log directory at %s", log_dir)
        return 0
    entries = sorted(os.listdir(log_dir))
    if not entries:
        return 0
    if not assume_yes and not confirm(
        "This DELETES {:d} entries in {}. Do you really wish to proceed?".format(
            len(entries), log_dir
        ),
        input_fn=input_fn,
    ):
        logger.info("aborting log cleanup")
        return None
    for entry in entries:
        target = join(log_dir, entry)
        if isfile(target) or islink(target):
            os.remove(target)
        else:
            shutil.rmtree(target)
    logger.info("Deleted %d entries from %s", len(entries), log_dir)
    return len(entries)
