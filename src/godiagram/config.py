"""Load godiagram configuration from TOML and poll it for changes."""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]

from godiagram.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "godiagram.toml"

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: object, key: str = "duration") -> float:
    """Return *value* in seconds.

    Accepts a number of seconds or a Go-style duration string such as
    ``"200ms"``, ``"5s"`` or ``"1m30s"``.
    """
    if isinstance(value, bool):
        raise ConfigError(f"{key}: expected a duration, got {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip()
        pos = 0
        seconds = 0.0
        for m in _DURATION_PART.finditer(text):
            if m.start() != pos:
                break
            seconds += float(m.group(1)) * _UNITS[m.group(2)]
            pos = m.end()
        if not text or pos != len(text):
            raise ConfigError(f"{key}: invalid duration {value!r}")
    else:
        raise ConfigError(f"{key}: expected a duration, got {value!r}")
    if seconds < 0:
        raise ConfigError(f"{key}: duration must not be negative")
    return seconds


def _parse_addr(value: object) -> tuple[str, int]:
    if not isinstance(value, str) or ":" not in value:
        raise ConfigError(f"addr: expected 'host:port', got {value!r}")
    host, _, port = value.rpartition(":")
    try:
        port_num = int(port)
    except ValueError as e:
        raise ConfigError(f"addr: invalid port in {value!r}") from e
    if not 0 <= port_num <= 65535:
        raise ConfigError(f"addr: port out of range in {value!r}")
    return host or "localhost", port_num


@dataclass(frozen=True)
class Config:
    """Settings consumed by the live pipeline and the transport."""

    root: Path
    host: str = "localhost"
    port: int = 5874
    debounce_interval: float = 0.2
    config_poll_interval: float = 5.0
    queue_size: int = 256
    ping_period: float = 54.0
    pong_wait: float = 60.0


def config_from_dict(data: dict, base_dir: Path) -> Config:
    """Build a Config from the ``[godiagram]`` table of a parsed TOML document."""
    table = data.get("godiagram", data)
    if not isinstance(table, dict):
        raise ConfigError("[godiagram] must be a table")

    root = table.get("root")
    if not isinstance(root, str) or not root:
        raise ConfigError("root: required, must be a directory path")
    root_path = Path(root).expanduser()
    if not root_path.is_absolute():
        root_path = base_dir / root_path

    host, port = _parse_addr(table.get("addr", "localhost:5874"))

    queue_size = table.get("queue_size", 256)
    if isinstance(queue_size, bool) or not isinstance(queue_size, int) or queue_size < 1:
        raise ConfigError(f"queue_size: expected a positive integer, got {queue_size!r}")

    config_poll = parse_duration(table.get("config_poll_interval", "5s"), "config_poll_interval")
    if config_poll <= 0:
        raise ConfigError("config_poll_interval: must be positive")

    return Config(
        root=root_path.resolve(),
        host=host,
        port=port,
        debounce_interval=parse_duration(table.get("debounce_interval", "200ms"), "debounce_interval"),
        config_poll_interval=config_poll,
        queue_size=queue_size,
        ping_period=parse_duration(table.get("ping_period", "54s"), "ping_period"),
        pong_wait=parse_duration(table.get("pong_wait", "60s"), "pong_wait"),
    )


def load_config(path: Path) -> Config:
    """Read and validate the config file at *path*."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid TOML in {path}: {e}") from e
    return config_from_dict(data, path.resolve().parent)


class ConfigWatcher:
    """Poll a config file and report changes to *on_change*.

    A reload that fails leaves the last good configuration in effect.
    """

    def __init__(
        self,
        path: Path,
        current: Config,
        on_change: Callable[[Config, Config], None],
    ) -> None:
        self.path = path
        self.current = current
        self._on_change = on_change
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def check(self) -> bool:
        """Reload once; return True if a new configuration was applied."""
        try:
            new = load_config(self.path)
        except ConfigError as e:
            logger.warning("Config reload failed, keeping previous settings: %s", e)
            return False
        if new == self.current:
            return False
        old, self.current = self.current, new
        logger.info("Config changed, updating...")
        self._on_change(old, new)
        return True

    def _run(self) -> None:
        while not self._stop.wait(self.current.config_poll_interval):
            try:
                self.check()
            except Exception:
                logger.exception("Applying config change failed")

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="godiagram-config", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
