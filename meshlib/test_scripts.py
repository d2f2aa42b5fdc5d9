import pytest

import kill_cluster
import start_cluster
from meshlib.launcher import ConnectResult, NodeStartupError


class FakeCluster:
    def __init__(self, results):
        self.results = results
        self.attached = False

    @property
    def failed(self):
        return [r for r in self.results if not r.ok]

    def attach(self):
        self.attached = True


def test_start_success(monkeypatch):
    seen = {}

    def fake_start(config):
        seen["config"] = config
        return FakeCluster([ConnectResult(3000, 3001, status=200)])

    monkeypatch.setattr(start_cluster, "start_cluster", fake_start)
    assert start_cluster.main(["--wait", "sleep", "--delay", "1"]) == 0
    assert seen["config"].wait_mode == "sleep"
    assert seen["config"].startup_delay == 1.0


def test_start_connect_failure(monkeypatch):
    cluster = FakeCluster(
        [ConnectResult(3000, 3001, status=200), ConnectResult(3000, 3002, status=400)]
    )
    monkeypatch.setattr(start_cluster, "start_cluster", lambda config: cluster)
    assert start_cluster.main(["--attach"]) == 1
    assert cluster.attached


def test_start_node_failure(monkeypatch):
    def fake_start(config):
        raise NodeStartupError(3001, "logs/node_3001.txt", "exited with code 1")

    monkeypatch.setattr(start_cluster, "start_cluster", fake_start)
    assert start_cluster.main([]) == 1


def test_start_bad_config(tmp_path, monkeypatch):
    monkeypatch.setattr(
        start_cluster, "start_cluster", lambda config: pytest.fail("must not start")
    )
    assert start_cluster.main(["--config", str(tmp_path / "missing.ini")]) == 1
    assert start_cluster.main(["--timeout", "-1"]) == 1


def test_kill(tmp_path, monkeypatch):
    ini = tmp_path / "cluster.ini"
    ini.write_text("[cluster]\nlog_dir = {}\n".format(tmp_path / "logs"))
    (tmp_path / "logs").mkdir()
    (tmp_path / "logs" / "node_3000.txt").write_text("x")
    seen = {}

    def fake_reclaim(ports, force, grace):
        seen["args"] = (list(ports), force, grace)
        return {port: [] for port in ports}

    monkeypatch.setattr(kill_cluster, "reclaim_ports", fake_reclaim)
    assert kill_cluster.main(["--config", str(ini), "--yes", "--force", "--grace", "1"]) == 0
    assert seen["args"] == ([3000, 3001, 3002], True, 1.0)
    assert list((tmp_path / "logs").iterdir()) == []
