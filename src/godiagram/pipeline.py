"""Orchestrator: extract once, or keep the model in sync with the source tree."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path

from godiagram.analysis import Fingerprint
from godiagram.config import Config, ConfigWatcher, load_config
from godiagram.detect import latest_mtime
from godiagram.errors import ParseError
from godiagram.extractors.base import Extractor
from godiagram.extractors.go.package_tree import GoPackageExtractor
from godiagram.hub import BroadcastHub, ObserverConnection
from godiagram.model import Model
from godiagram.state import AstRegistry, ModelCache
from godiagram.synthesis import FileResult, apply_edits
from godiagram.watcher import SourceWatcher
from godiagram.wire import CLEAR_LAYOUT, dumps, error_message

logger = logging.getLogger(__name__)

IDLE = "idle"
DEBOUNCING = "debouncing"
EXTRACTING = "extracting"


class Debouncer:
    """Coalesce bursts of triggers into one call of *action*.

    One long-lived thread drives ``IDLE -> DEBOUNCING -> EXTRACTING -> IDLE``.
    Every trigger restarts the quiet period; the interval is read at each
    restart.  A trigger that arrives while the action runs schedules another
    run once it finishes.
    """

    def __init__(self, interval: Callable[[], float], action: Callable[[], object], name: str = "godiagram-debounce") -> None:
        self._interval = interval
        self._action = action
        self._name = name
        self._cond = threading.Condition()
        self._deadline: float | None = None
        self._stopped = False
        self._thread: threading.Thread | None = None
        self.state = IDLE
        self.runs = 0

    def start(self) -> None:
        with self._cond:
            if self._thread is not None:
                return
            self._stopped = False
            self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        with self._cond:
            self._stopped = True
            self._cond.notify_all()
            thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)

    def trigger(self) -> None:
        with self._cond:
            if self._stopped:
                return
            self._deadline = time.monotonic() + self._interval()
            if self.state == IDLE:
                self.state = DEBOUNCING
            self._cond.notify_all()

    def cancel(self) -> None:
        """Drop a pending quiet period without running the action."""
        with self._cond:
            self._deadline = None
            if self.state == DEBOUNCING:
                self.state = IDLE
            self._cond.notify_all()

    def wait_idle(self, timeout: float | None = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self.state == IDLE and self._deadline is None, timeout)

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._stopped and self._deadline is None:
                    self._cond.wait()
                while not self._stopped and self._deadline is not None:
                    remaining = self._deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    self._cond.wait(remaining)
                if self._stopped:
                    return
                if self._deadline is None:
                    continue
                self._deadline = None
                self.state = EXTRACTING
            try:
                self._action()
            except Exception:
                logger.exception("Debounced action failed")
            with self._cond:
                self.runs += 1
                self.state = DEBOUNCING if self._deadline is not None else IDLE
                self._cond.notify_all()


class SyncPipeline:
    """Owns the canonical model and keeps observers in sync with the tree."""

    def __init__(
        self,
        config: Config,
        *,
        extractor: Extractor | None = None,
        hub: BroadcastHub | None = None,
        registry: AstRegistry | None = None,
        cache: ModelCache | None = None,
        watch: bool = True,
    ) -> None:
        self.config = config
        self.extractor = extractor or GoPackageExtractor()
        self.hub = hub or BroadcastHub()
        self.registry = registry or AstRegistry()
        self.cache = cache or ModelCache()
        self.debouncer = Debouncer(lambda: self.config.debounce_interval, self.refresh)
        self._watch = watch
        self._watcher: SourceWatcher | None = None
        # fingerprint of the model every connected observer currently holds
        self._published: Fingerprint | None = None

    @property
    def root(self) -> Path:
        return self.config.root

    # -- lifecycle --------------------------------------------------------

    def start(self) -> None:
        self.debouncer.start()
        if self._watch:
            self._start_watcher()

    def stop(self) -> None:
        self.debouncer.stop()
        self._stop_watcher()
        self.hub.close_all()

    def _start_watcher(self) -> None:
        self._watcher = SourceWatcher(self.root, self.notify_change)
        self._watcher.start()

    def _stop_watcher(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    # -- extraction -------------------------------------------------------

    def notify_change(self, path: str, kind: str) -> None:
        """Record a file-system notification; extraction follows the quiet period."""
        logger.debug("Change notification: %s %s", kind, path)
        self.debouncer.trigger()

    def _extract(self) -> Model:
        extraction = self.extractor.extract(self.root)
        self.registry.replace(extraction.parsed)
        return extraction.model

    def refresh(self) -> bool:
        """Re-extract and broadcast if the struct graph changed.

        Returns True if a broadcast was sent.  A parse failure is logged and
        the previously cached model stays authoritative.
        """
        with self.cache.lock:
            mtime = latest_mtime(self.root)
            try:
                model = self._extract()
            except ParseError as e:
                logger.warning("Error updating structure: %s", e)
                return False
            entry = self.cache.store(mtime, model)
            if entry.fingerprint == self._published:
                logger.info("No changes detected, skipping broadcast")
                return False
            self._publish(model, entry.fingerprint)
        logger.info(
            "Broadcast updated structure with %d packages, %d edges",
            len(model.packages),
            len(model.edges),
        )
        return True

    def request_current_model(self) -> Model:
        """Return the cached model, re-extracting first if sources are newer.

        Raises ParseError if a needed re-extraction fails.
        """
        return self.cache.get_fresh(lambda: latest_mtime(self.root), self._extract)

    # -- observers --------------------------------------------------------

    def _publish(self, model: Model, fp: Fingerprint) -> None:
        """Broadcast clear, then *model*, to every observer."""
        self.hub.broadcast(CLEAR_LAYOUT)
        self.hub.broadcast(model)
        self._published = fp

    def connect(self, conn: ObserverConnection) -> None:
        """Register *conn* and queue the current model for it.

        If the freshness check finds a model newer than the one the other
        observers hold, it is broadcast to everyone instead.
        """
        with self.cache.lock:
            others = len(self.hub)
            self.hub.register(conn)
            try:
                model = self.request_current_model()
            except ParseError as e:
                logger.warning("Error reading initial model: %s", e)
                conn.offer(error_message(str(e)))
                model = self.cache.model
                if model is not None:
                    conn.offer(model)
                return
            fp = self.cache.entry.fingerprint
            if others and fp != self._published:
                self._publish(model, fp)
                return
            self._published = fp
            conn.offer(model)

    def disconnect(self, conn: ObserverConnection) -> None:
        self.hub.unregister(conn)
        conn.close()

    def submit_edited_model(self, model: Model) -> list[FileResult]:
        """Write an observer's edited model back to the source files.

        The whole batch runs under the registry's write lock.  Results go
        back to the submitting observer only; the watcher picks up the
        rewritten files and broadcasts the new model.
        """
        if self.cache.model is None:
            try:
                self.request_current_model()
            except ParseError as e:
                logger.warning("Cannot load sources before applying edits: %s", e)
        with self.registry.write() as packages:
            results = apply_edits(packages, model)
        failed = sum(1 for r in results if not r.ok)
        logger.info("Applied edit batch: %d file(s), %d failed", len(results), failed)
        return results

    # -- configuration ----------------------------------------------------

    def apply_config(self, old: Config, new: Config) -> None:
        """React to a reloaded configuration.

        Interval changes take effect on the next timer restart; a new root
        resets all state and triggers one synchronous extraction.
        """
        self.config = new
        if old.root != new.root:
            logger.info("Directory changed from %s to %s, updating...", old.root, new.root)
            self.reset_root()
        if (old.host, old.port) != (new.host, new.port):
            logger.warning("Server address changed, restart required")

    def reset_root(self) -> None:
        with self.cache.lock:
            self.debouncer.cancel()
            watching = self._watcher is not None
            self._stop_watcher()
            self.cache.clear()
            self.registry.clear()
            if watching:
                self._start_watcher()
            self.hub.broadcast(CLEAR_LAYOUT)
            self._published = None
            try:
                model = self.request_current_model()
            except ParseError as e:
                logger.warning("Error reading new directory: %s", e)
                return
            self.hub.broadcast(model)
            self._published = self.cache.entry.fingerprint


def run(project_dir: Path, *, output: Path | None = None) -> Model:
    """Extract *project_dir* once and optionally write the model JSON to *output*."""
    project_dir = project_dir.resolve()
    extractor = GoPackageExtractor()
    if not extractor.can_handle(project_dir):
        logger.warning("No Go sources found under %s", project_dir)
    extraction = extractor.extract(project_dir)
    model = extraction.model
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(dumps(model), encoding="utf-8")
        logger.info("Generated %s", output)
    return model


def serve(config_path: Path) -> None:
    """Run the live pipeline, config watcher and observer transport until interrupted."""
    from godiagram.transport import ObserverServer

    config = load_config(config_path)
    logger.info("Starting server with configuration: %s", config)

    pipeline = SyncPipeline(config)
    pipeline.start()
    try:
        pipeline.request_current_model()
    except ParseError as e:
        logger.warning("Initial extraction failed: %s", e)

    config_watcher = ConfigWatcher(config_path, config, pipeline.apply_config)
    config_watcher.start()
    server = ObserverServer(pipeline)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down server...")
    finally:
        config_watcher.stop()
        server.shutdown()
        pipeline.stop()
        logger.info("Server exiting")
