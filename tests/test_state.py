from __future__ import annotations

import threading
import time

from godiagram.model import Field, File, Model, Package, Struct, TypeRef
from godiagram.state import AstRegistry, ModelCache, ReadWriteLock


def _model(*fields: str) -> Model:
    st = Struct(name="S", fields=[Field(name=f, type=TypeRef("int")) for f in fields])
    return Model(packages=[Package(name="p", files=[File(name="a.go", structs=[st])])])


def test_get_fresh_extracts_only_when_sources_are_newer():
    cache = ModelCache()
    mtime = [1.0]
    calls = []

    def extract():
        calls.append(1)
        return _model("A")

    first = cache.get_fresh(lambda: mtime[0], extract)
    assert cache.get_fresh(lambda: mtime[0], extract) is first
    assert len(calls) == 1

    mtime[0] = 2.0
    second = cache.get_fresh(lambda: mtime[0], extract)
    assert second is not first
    assert len(calls) == 2
    assert cache.entry.timestamp == 2.0


def test_concurrent_callers_extract_once():
    cache = ModelCache()
    calls = []

    def extract():
        calls.append(1)
        time.sleep(0.05)
        return _model("A")

    results = []
    threads = [threading.Thread(target=lambda: results.append(cache.get_fresh(lambda: 5.0, extract))) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
    assert len(calls) == 1
    assert len({id(m) for m in results}) == 1


def test_store_computes_fingerprint_ignoring_field_order():
    cache = ModelCache()
    a = cache.store(1.0, _model("X", "Y")).fingerprint
    b = cache.store(2.0, _model("Y", "X")).fingerprint
    assert a == b
    assert cache.store(3.0, _model("X")).fingerprint != a
    cache.clear()
    assert cache.model is None
    assert cache.is_stale(0.0)


def test_writer_excludes_readers():
    lock = ReadWriteLock()
    events = []
    reading = threading.Event()
    release = threading.Event()

    def reader():
        with lock.read():
            reading.set()
            release.wait(5)
            events.append("read done")

    def writer():
        with lock.write():
            events.append("write")

    r = threading.Thread(target=reader)
    r.start()
    reading.wait(5)
    w = threading.Thread(target=writer)
    w.start()
    time.sleep(0.05)
    assert events == []
    release.set()
    r.join(timeout=5)
    w.join(timeout=5)
    assert events == ["read done", "write"]


def test_registry_replace_copies_mapping():
    registry = AstRegistry()
    packages = {"p": {}}
    registry.replace(packages)
    packages["q"] = {}
    assert list(registry.snapshot()) == ["p"]
    with registry.write() as current:
        current["r"] = {}
    with registry.read() as current:
        assert sorted(current) == ["p", "r"]
    registry.clear()
    assert registry.snapshot() == {}
