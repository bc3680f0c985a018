from __future__ import annotations

import json
import threading
import time
from types import SimpleNamespace

import pytest
from websockets.sync.client import connect

from godiagram.config import Config
from godiagram.hub import ObserverConnection
from godiagram.pipeline import SyncPipeline
from godiagram.transport import ObserverServer

A_GO = "package p\n\ntype A struct {\n\tB *B\n}\n"
B_GO = "package p\n\ntype B struct{}\n"


@pytest.fixture
def server(go_tree):
    root = go_tree({"a.go": A_GO, "b.go": B_GO})
    pipeline = SyncPipeline(Config(root=root, host="127.0.0.1", port=0), watch=False)
    srv = ObserverServer(pipeline)
    srv.bind()
    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()
    yield srv
    srv.shutdown()
    thread.join(timeout=5)
    pipeline.stop()


def _client(srv):
    return connect(f"ws://127.0.0.1:{srv.port}")


def _recv(ws, timeout=5.0):
    return json.loads(ws.recv(timeout=timeout))


def _with_field(model: dict, struct: str, name: str, literal: str) -> dict:
    for pkg in model["packages"]:
        for f in pkg["files"]:
            for st in f["structs"]:
                if st["name"] == struct:
                    st["fields"].append({"name": name, "type": {"literal": literal, "structs": []}})
    return model


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_new_observer_receives_current_model(server):
    with _client(server) as ws:
        model = _recv(ws)
    assert [p["name"] for p in model["packages"]] == ["p"]
    assert model["edges"][0]["to"]["fileName"] == "b.go"


def test_invalid_json_gets_error_reply(server):
    with _client(server) as ws:
        _recv(ws)
        ws.send("{not json")
        reply = _recv(ws)
        assert "error" in reply
        # The connection stays usable.
        ws.send(json.dumps({"packages": []}))
        assert _recv(ws) == {"results": []}


def test_edit_results_go_to_submitter_only(server):
    with _client(server) as a, _client(server) as b:
        model = _recv(a)
        _recv(b)
        a.send(json.dumps(_with_field(model, "B", "Size", "int")))
        reply = _recv(a)
        assert {r["file"]: r["ok"] for r in reply["results"]} == {"a.go": True, "b.go": True}
        with pytest.raises(TimeoutError):
            b.recv(timeout=0.3)
    assert "\tSize int\n" in (server.pipeline.root / "b.go").read_text()


def test_failed_edit_reports_results_then_error(server):
    with _client(server) as ws:
        model = _recv(ws)
        ws.send(json.dumps(_with_field(model, "B", "C", "chan<>")))
        results = _recv(ws)["results"]
        assert not any(r["ok"] for r in results)
        assert "chan<>" in _recv(ws)["error"]
    assert (server.pipeline.root / "b.go").read_text() == B_GO


def test_dropped_connection_does_not_affect_others(server):
    with _client(server) as keep:
        _recv(keep)
        gone = _client(server)
        _recv(gone)
        assert _wait_for(lambda: len(server.pipeline.hub) == 2)
        gone.close()
        assert _wait_for(lambda: len(server.pipeline.hub) == 1)

        (server.pipeline.root / "b.go").write_text("package p\n\ntype B struct {\n\tN int\n}\n")
        assert server.pipeline.refresh()
        assert _recv(keep) == {"clearLayout": True}
        model = _recv(keep)
        assert model["packages"][0]["files"][1]["structs"][0]["fields"][0]["name"] == "N"


class FakeSocket:
    """Stands in for a server connection inside the writer thread."""

    def __init__(self, answer_pings: bool = True) -> None:
        self.answer_pings = answer_pings
        self.pings = 0
        self.sent: list[str] = []
        self.closed = False

    def ping(self) -> threading.Event:
        self.pings += 1
        pong = threading.Event()
        if self.answer_pings:
            pong.set()
        return pong

    def send(self, text: str) -> None:
        self.sent.append(text)

    def close(self) -> None:
        self.closed = True


def _writer(tmp_path, ws, conn, ping_period, pong_wait):
    config = Config(root=tmp_path, ping_period=ping_period, pong_wait=pong_wait)
    srv = ObserverServer(SimpleNamespace(config=config))
    thread = threading.Thread(target=srv._write_loop, args=(ws, conn), daemon=True)
    thread.start()
    return thread


def test_unanswered_ping_closes_connection(tmp_path):
    ws = FakeSocket(answer_pings=False)
    conn = ObserverConnection()
    thread = _writer(tmp_path, ws, conn, ping_period=0.05, pong_wait=0.1)
    thread.join(timeout=5)
    assert not thread.is_alive()
    assert ws.pings == 1
    assert ws.closed
    assert conn.closed.is_set()


def test_pings_continue_while_queue_is_busy(tmp_path):
    ws = FakeSocket()
    conn = ObserverConnection()
    thread = _writer(tmp_path, ws, conn, ping_period=0.05, pong_wait=1.0)
    deadline = time.monotonic() + 0.4
    while time.monotonic() < deadline:
        conn.offer({"clearLayout": True})
        time.sleep(0.005)
    conn.close()
    thread.join(timeout=5)
    assert not thread.is_alive()
    assert len(ws.sent) > 10
    assert ws.pings >= 3
