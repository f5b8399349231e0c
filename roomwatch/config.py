"""
Configuration management for roomwatch.

Supports:
- Programmatic configuration via dataclasses
- YAML file loading
- Environment variable fallbacks (including .env files)
- CLI overrides merged on top of the file
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

DEFAULT_HOME = Path.home() / ".roomwatch"
DEFAULT_INSTRUCTION = "check room"
DISPATCHERS = ("tmux", "gateway")


def load_env() -> None:
    """Load .env from current directory or home."""
    load_dotenv()
    load_dotenv(Path.home() / ".env")


def normalize_handle(handle: str) -> str:
    """Strip whitespace and a leading '@' from a handle."""
    return (handle or "").strip().lstrip("@")


def _env_first(*names: str) -> Optional[str]:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


def _expand(path: Any) -> Path:
    return Path(os.path.expanduser(str(path)))


def _number(name: str, value: Any, kind=float):
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")


def _known(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys the dataclass doesn't define (forward compatible files)."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass(frozen=True)
class PollConfig:
    """What to watch, who we are, and where to deliver triggers.

    Immutable for the lifetime of the process.
    """

    room_id: str
    handle: str
    interval_seconds: float = 30.0
    fetch_timeout: float = 10.0
    target_context: str = "claude"
    instruction: str = DEFAULT_INSTRUCTION
    settle_seconds: float = 0.3
    dispatcher: str = "tmux"
    state_dir: Path = DEFAULT_HOME
    case_sensitive_handle: bool = True
    dry_run: bool = False

    def __post_init__(self):
        object.__setattr__(self, "handle", normalize_handle(self.handle))
        object.__setattr__(self, "state_dir", _expand(self.state_dir))
        for name in ("interval_seconds", "fetch_timeout", "settle_seconds"):
            object.__setattr__(self, name, _number(name, getattr(self, name)))

        if not self.room_id:
            raise ConfigurationError("room_id is required")
        if not self.handle:
            raise ConfigurationError("handle is required")
        if self.interval_seconds <= 0:
            raise ConfigurationError("interval_seconds must be positive")
        if self.fetch_timeout <= 0:
            raise ConfigurationError("fetch_timeout must be positive")
        if self.settle_seconds < 0:
            raise ConfigurationError("settle_seconds cannot be negative")
        if not self.target_context:
            raise ConfigurationError("target_context is required")
        if not self.instruction:
            raise ConfigurationError("instruction cannot be empty")
        if self.dispatcher not in DISPATCHERS:
            raise ConfigurationError(
                f"dispatcher must be one of {', '.join(DISPATCHERS)}, got '{self.dispatcher}'"
            )


@dataclass
class SourceConfig:
    """Connection settings for the room's REST endpoint."""

    url: Optional[str] = None
    api_key: Optional[str] = None
    table: str = "messages"

    def __post_init__(self):
        if self.url:
            self.url = self.url.rstrip("/")
        if not self.table:
            raise ConfigurationError("source table cannot be empty")


@dataclass
class GatewayConfig:
    """Settings for the local agent gateway (alternate dispatcher)."""

    host: str = "127.0.0.1"
    port: int = 18791
    token: Optional[str] = None
    timeout_seconds: float = 30.0
    method: str = "sessions.send"
    mode: str = "rpc"  # rpc, hook

    def __post_init__(self):
        self.port = _number("gateway port", self.port, int)
        self.timeout_seconds = _number("gateway timeout_seconds", self.timeout_seconds)
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"gateway port out of range: {self.port}")
        if self.timeout_seconds <= 0:
            raise ConfigurationError("gateway timeout_seconds must be positive")
        if self.mode not in ("rpc", "hook"):
            raise ConfigurationError(f"gateway mode must be 'rpc' or 'hook', got '{self.mode}'")


@dataclass
class Config:
    """Master configuration.

    Example usage:
        # From file, with CLI overrides
        config = Config.from_yaml(Path("roomwatch.yaml"), overrides={"handle": "bot"})

        # Programmatic
        config = Config(
            poll=PollConfig(room_id="083b...", handle="bot"),
            source=SourceConfig(url="https://xyz.supabase.co", api_key="..."),
        )
    """

    poll: PollConfig
    source: SourceConfig = field(default_factory=SourceConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    log_dir: Path = DEFAULT_HOME / "logs"

    def __post_init__(self):
        if isinstance(self.log_dir, str):
            self.log_dir = _expand(self.log_dir)

    @classmethod
    def from_yaml(cls, path: Optional[Path], overrides: Optional[Dict[str, Any]] = None) -> "Config":
        """Load configuration from a YAML file, then apply overrides.

        Args:
            path: Path to YAML file, or None to use only overrides
            overrides: Flat poll/source settings (CLI flags); None values are ignored

        Returns:
            Config instance

        Raises:
            ConfigurationError: If file not found, invalid, or incomplete
        """
        data: Dict[str, Any] = {}
        if path is not None:
            if not path.exists():
                raise ConfigurationError(f"Config file not found: {path}")
            try:
                with open(path) as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}")
            if not isinstance(data, dict):
                raise ConfigurationError(f"Config root must be a mapping: {path}")

        return cls.from_dict(data, overrides)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], overrides: Optional[Dict[str, Any]] = None) -> "Config":
        """Create configuration from a dictionary.

        Flat override keys go to the section that owns them: api_key and
        url to source, everything else to poll.
        """
        poll_data = dict(data.get("poll") or {})
        source_data = dict(data.get("source") or {})
        gateway_data = dict(data.get("gateway") or {})

        for key, value in (overrides or {}).items():
            if value is None:
                continue
            if key in ("url", "api_key", "table"):
                source_data[key] = value
            else:
                poll_data[key] = value

        source_data.setdefault("url", _env_first("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"))
        source_data.setdefault(
            "api_key",
            _env_first("SUPABASE_SERVICE_ROLE_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"),
        )
        gateway_data.setdefault("token", _env_first("ROOMWATCH_GATEWAY_TOKEN"))

        for required in ("room_id", "handle"):
            if not poll_data.get(required):
                raise ConfigurationError(f"{required} is required")

        poll = PollConfig(**_known(PollConfig, poll_data))
        source = SourceConfig(**_known(SourceConfig, source_data))
        gateway = GatewayConfig(**_known(GatewayConfig, gateway_data))

        kwargs: Dict[str, Any] = {"poll": poll, "source": source, "gateway": gateway}
        if data.get("log_dir"):
            kwargs["log_dir"] = _expand(data["log_dir"])
        return cls(**kwargs)
