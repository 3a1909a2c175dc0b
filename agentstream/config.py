import os
from dataclasses import dataclass, field, fields
from pathlib import Path
import logging
from typing import Any, Dict, List, Optional, Tuple

import yaml  # type: ignore
from dotenv import load_dotenv  # type: ignore

from agentstream.utils.errors import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "AGENTSTREAM_"

BacklogSteps = List[Tuple[int, int]]


def _deep_merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _deep_merge_dicts(dict(base.get(key, {})), value)
        else:
            base[key] = value
    return base


def _find_git_root(start_path: Path) -> Optional[Path]:
    path = start_path
    while True:
        if (path / '.git').exists():
            return path
        if path.parent == path:
            return None
        path = path.parent


def get_user_config_path() -> Path:
    if os.name == 'posix':
        base = Path(os.environ.get('XDG_CONFIG_HOME', Path.home() / '.config'))
    else:
        base = Path(os.environ.get('APPDATA', Path.home() / 'AppData' / 'Roaming'))
    return base / 'agentstream' / 'config.yml'


def get_project_config_paths(cwd_override: Optional[str] = None) -> Dict[str, Path]:
    try:
        start_dir = Path(cwd_override or os.environ.get('AGENTSTREAM_CWD') or os.getcwd()).resolve()
    except OSError:
        start_dir = Path.cwd().resolve()
    project_root = _find_git_root(start_dir) or start_dir
    cfg_dir = project_root / '.agentstream'
    return {
        'project_root': project_root,
        'dir': cfg_dir,
        'project': cfg_dir / 'config.yml',
        'local': cfg_dir / 'settings.local.yml',
    }


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
            return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Error loading config {path}: {e}")
        return {}


def load_config(cwd_override: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration by merging multiple locations with clear precedence.

    Precedence (lowest → highest):
      1. Package default (agentstream/config.yml)
      2. User config (~/.config/agentstream/config.yml or %APPDATA%/agentstream/config.yml)
      3. Project config (<project_root>/.agentstream/config.yml)
      4. Project local overrides (<project_root>/.agentstream/settings.local.yml)
      5. Explicit override via AGENTSTREAM_CONFIG_PATH (highest single-file override)

    Individual pacing values can still be overridden by AGENTSTREAM_* environment
    variables, see ``PacingConfig.load``.
    """
    load_dotenv()

    merged: Dict[str, Any] = {}

    package_config_path = Path(__file__).parent / "config.yml"
    merged = _deep_merge_dicts(merged, _read_yaml(package_config_path))
    logger.debug(f"Loaded package default config: {package_config_path}")

    user_config_path = get_user_config_path()
    if user_config_path.exists():
        merged = _deep_merge_dicts(merged, _read_yaml(user_config_path))
        logger.debug(f"Loaded user config: {user_config_path}")

    paths = get_project_config_paths(cwd_override)
    for key in ('project', 'local'):
        if paths[key].exists():
            merged = _deep_merge_dicts(merged, _read_yaml(paths[key]))
            logger.debug(f"Loaded {key} config: {paths[key]}")

    override = os.getenv('AGENTSTREAM_CONFIG_PATH')
    if override:
        override_path = Path(override).expanduser()
        if override_path.exists():
            merged = _deep_merge_dicts(merged, _read_yaml(override_path))
            logger.debug(f"Loaded override config: {override_path}")
        else:
            logger.warning(f"AGENTSTREAM_CONFIG_PATH points to a missing file: {override_path}")

    return merged


def _parse_steps(raw: Any, name: str) -> BacklogSteps:
    try:
        steps = [(int(threshold), int(multiplier)) for threshold, multiplier in raw]
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a list of [threshold, multiplier] pairs", details={"value": raw}) from e
    return sorted(steps)


@dataclass
class PacingConfig:
    """Tuning constants for the reveal engine.

    These are defaults, not contracts: only the clamp semantics and the
    proportions between them matter to the schedulers.
    """

    ewma_weight: float = 0.3

    boost_window_ms: float = 4000.0
    frame_budget_ms: float = 32.0
    min_chunk_chars: int = 12
    max_chunk_chars: int = 256
    soft_wait_factor: float = 1.1
    soft_wait_min_ms: float = 16.0
    soft_wait_max_ms: float = 120.0
    hard_wait_factor: float = 3.0
    hard_wait_min_ms: float = 80.0
    hard_wait_max_ms: float = 320.0
    min_flush_interval_ms: float = 16.0
    spooler_period_ms: float = 33.0
    spooler_backlog_steps: BacklogSteps = field(default_factory=lambda: [(200, 2), (400, 3)])

    reasoning_frame_ms: float = 16.0
    reasoning_backlog_steps: BacklogSteps = field(
        default_factory=lambda: [(40, 2), (100, 3), (200, 4)]
    )

    tool_frame_ms: float = 16.0

    def __post_init__(self):
        if not 0.0 < self.ewma_weight <= 1.0:
            raise ConfigError("ewma_weight must be in (0, 1]", details={"ewma_weight": self.ewma_weight})
        if self.min_chunk_chars < 1 or self.max_chunk_chars < self.min_chunk_chars:
            raise ConfigError(
                "chunk bounds must satisfy 1 <= min_chunk_chars <= max_chunk_chars",
                details={"min": self.min_chunk_chars, "max": self.max_chunk_chars},
            )
        if self.soft_wait_max_ms < self.soft_wait_min_ms or self.hard_wait_max_ms < self.hard_wait_min_ms:
            raise ConfigError("wait bounds must have max >= min")
        for name in ("spooler_period_ms", "reasoning_frame_ms", "tool_frame_ms"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive", details={name: getattr(self, name)})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PacingConfig":
        """Create a config from the ``pacing`` section of a raw config dictionary."""
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data or data[f.name] is None:
                continue
            value = data[f.name]
            if f.name.endswith("_backlog_steps"):
                kwargs[f.name] = _parse_steps(value, f.name)
            elif f.type in (int, "int"):
                kwargs[f.name] = int(value)
            else:
                kwargs[f.name] = float(value)
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            logger.warning(f"Ignoring unknown pacing keys: {sorted(unknown)}")
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Return a serialisable copy of the settings."""
        payload: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name.endswith("_backlog_steps"):
                value = [list(step) for step in value]
            payload[f.name] = value
        return payload

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "PacingConfig":
        """Load the effective pacing config.

        Uses the layered resolver unless an explicit file is given, then applies
        scalar ``AGENTSTREAM_<FIELD>`` environment overrides.
        """
        if config_path is None:
            config_data = load_config()
        else:
            config_data = _read_yaml(Path(config_path))

        pacing = config_data.get("pacing", {})
        if not isinstance(pacing, dict):
            logger.warning("Config section 'pacing' is not a mapping; using defaults")
            pacing = {}
        pacing = dict(pacing)

        for f in fields(cls):
            if f.name.endswith("_backlog_steps"):
                continue
            env_value = os.getenv(f"{ENV_PREFIX}{f.name.upper()}")
            if env_value is not None:
                pacing[f.name] = env_value

        try:
            return cls.from_dict(pacing)
        except ValueError as e:
            raise ConfigError(f"Invalid pacing value: {e}") from e


def get_logging_settings(config_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return the ``logging`` section with defaults filled in."""
    config_data = load_config() if config_data is None else config_data
    section = config_data.get("logging", {})
    if not isinstance(section, dict):
        section = {}
    level_name = str(section.get("level", "INFO")).upper()
    return {
        "level": getattr(logging, level_name, logging.INFO),
        "console": bool(section.get("console", False)),
    }
