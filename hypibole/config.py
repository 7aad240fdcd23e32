"""Configuration loader for hypibole.

Parses the YAML service configuration into dataclasses and builds the pin
registry from the board whitelist.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List
import logging

import yaml

from .pin_registry import PinRegistry, RegistryError

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/hypibole/hypibole.yaml"
RESTART_POLICIES = ("always", "on-failure", "never")


class ConfigError(RuntimeError):
    """Raised when the configuration file is missing or invalid."""


@dataclass
class NetworkConfig:
    address: str = "0.0.0.0"
    port: int = 8080


@dataclass
class BoardConfig:
    chip: str = "/dev/gpiochip0"
    consumer: str = "hypibole"
    gets: List[int] = field(default_factory=list)
    sets: List[int] = field(default_factory=list)
    simgets: List[int] = field(default_factory=list)
    simsets: List[int] = field(default_factory=list)
    header: Dict[str, int] = field(default_factory=dict)
    eager: bool = False


@dataclass
class LauncherConfig:
    restart_policy: str = "on-failure"
    restart_backoff_ms: int = 2000


@dataclass
class ServiceConfig:
    network: NetworkConfig = field(default_factory=NetworkConfig)
    board: BoardConfig = field(default_factory=BoardConfig)
    launcher: LauncherConfig = field(default_factory=LauncherConfig)


def parse_gpio_list(value: Any) -> List[int]:
    """Parse "1,2,3" or [1, 2, 3] into an ordered list of unique line numbers."""
    if value is None:
        return []
    if isinstance(value, str):
        tokens: List[Any] = [t.strip() for t in value.split(",") if t.strip() != ""]
    elif isinstance(value, (list, tuple)):
        tokens = list(value)
    elif isinstance(value, int) and not isinstance(value, bool):
        tokens = [value]
    else:
        raise ConfigError(f"Expected a comma-separated string or list of GPIO lines, got {value!r}")

    lines: List[int] = []
    for token in tokens:
        if isinstance(token, bool):
            raise ConfigError(f"Invalid GPIO line {token!r}")
        try:
            line = int(token)
        except (TypeError, ValueError):
            raise ConfigError(f"Invalid GPIO line {token!r}") from None
        if line < 0:
            raise ConfigError(f"Invalid GPIO line {token!r}")
        if line not in lines:
            lines.append(line)
    return lines


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return a dict (empty if the file is empty)."""
    if not path.exists():
        raise ConfigError(f"Missing configuration file: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Unable to read {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected mapping in {path}")
    return data


def load_config(path: str | Path) -> ServiceConfig:
    """Load the service configuration from disk."""
    path = Path(path)
    data = load_yaml(path)
    try:
        return ServiceConfig(
            network=_network(_section(data, "network")),
            board=_board(_section(data, "board")),
            launcher=_launcher(_section(data, "launcher")),
        )
    except ConfigError as exc:
        raise ConfigError(f"{path}: {exc}") from exc


def build_registry(board: BoardConfig) -> PinRegistry:
    """Build the pin registry for a board section."""
    try:
        registry = PinRegistry.from_whitelist(
            board.gets,
            board.sets,
            simgets=board.simgets,
            simsets=board.simsets,
            header=board.header,
        )
    except RegistryError as exc:
        raise ConfigError(str(exc)) from exc
    if not len(registry):
        LOGGER.warning("Pin whitelist is empty; every request will be rejected")
    return registry


def config_to_args(config: ServiceConfig) -> List[str]:
    """Render a configuration as daemon command-line flags."""
    board = config.board
    args = [
        "--address", config.network.address,
        "--port", str(config.network.port),
        "--chip", board.chip,
        "--consumer", board.consumer,
    ]
    for flag, lines in (
        ("--gets", board.gets),
        ("--sets", board.sets),
        ("--simgets", board.simgets),
        ("--simsets", board.simsets),
    ):
        if lines:
            args.extend([flag, ",".join(str(line) for line in lines)])
    for header_id, line in board.header.items():
        args.extend(["--header", f"{header_id}={line}"])
    if board.eager:
        args.append("--eager")
    return args


def parse_header_items(items: List[str]) -> Dict[str, int]:
    """Parse ["P1-7=4", ...] into a header map."""
    header: Dict[str, int] = {}
    for item in items:
        header_id, sep, line = item.partition("=")
        lines = parse_gpio_list(line) if sep else []
        if not header_id.strip() or len(lines) != 1:
            raise ConfigError(f"Header alias must look like ID=LINE, got {item!r}")
        header[header_id.strip()] = lines[0]
    return header


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    return value


def _network(data: Dict[str, Any]) -> NetworkConfig:
    defaults = NetworkConfig()
    try:
        port = int(data.get("port", defaults.port))
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid port {data.get('port')!r}") from None
    if not 0 <= port <= 0xFFFF:
        raise ConfigError(f"Invalid port {port}")
    return NetworkConfig(address=str(data.get("address", defaults.address)), port=port)


def _board(data: Dict[str, Any]) -> BoardConfig:
    defaults = BoardConfig()
    header_raw = data.get("header") or {}
    if not isinstance(header_raw, dict):
        raise ConfigError("board.header must be a mapping of header id to GPIO line")
    eager = data.get("eager", defaults.eager)
    if not isinstance(eager, bool):
        raise ConfigError(f"board.eager must be true or false, got {eager!r}")
    header: Dict[str, int] = {}
    for header_id, line in header_raw.items():
        lines = parse_gpio_list([line])
        header[str(header_id)] = lines[0]
    return BoardConfig(
        chip=str(data.get("chip", defaults.chip)),
        consumer=str(data.get("consumer", defaults.consumer)),
        gets=parse_gpio_list(data.get("gets")),
        sets=parse_gpio_list(data.get("sets")),
        simgets=parse_gpio_list(data.get("simgets")),
        simsets=parse_gpio_list(data.get("simsets")),
        header=header,
        eager=eager,
    )


def _launcher(data: Dict[str, Any]) -> LauncherConfig:
    defaults = LauncherConfig()
    policy = str(data.get("restart_policy", defaults.restart_policy)).strip().lower()
    if policy not in RESTART_POLICIES:
        raise ConfigError(f"restart_policy must be one of {', '.join(RESTART_POLICIES)}, got {policy!r}")
    try:
        backoff_ms = max(0, int(data.get("restart_backoff_ms", defaults.restart_backoff_ms)))
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid restart_backoff_ms {data.get('restart_backoff_ms')!r}") from None
    return LauncherConfig(restart_policy=policy, restart_backoff_ms=backoff_ms)
