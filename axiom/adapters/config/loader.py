"""
Configuration loader with priority: CLI > env > TOML > defaults
"""
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional, List, Tuple

from ...core.constants import (
    DEFAULT_CAPTURE_ADDRESS,
    DEFAULT_CAPTURE_DEVICE,
    DEFAULT_CAPTURE_MTU,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_START_TIMEOUT,
    DEFAULT_STATE_DIR,
)
from ...core.exceptions import ConfigError
from ...domain.tunnel.models import Endpoint


@dataclass(frozen=True)
class AppSettings:
    """Resolved application settings"""
    state_dir: Path = Path(DEFAULT_STATE_DIR).expanduser()
    log_level: str = "INFO"
    engine_binary: Optional[str] = None
    simulate: bool = False
    start_timeout: float = DEFAULT_START_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    endpoint: Optional[Endpoint] = None
    capture_enabled: bool = True
    capture_device: str = DEFAULT_CAPTURE_DEVICE
    capture_address: str = DEFAULT_CAPTURE_ADDRESS
    capture_mtu: int = DEFAULT_CAPTURE_MTU
    capture_routes: Tuple[str, ...] = field(default_factory=tuple)
    relaxed_fallback: bool = False

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "AppSettings":
        """
        Build settings from a merged configuration dictionary.

        Raises:
            ConfigError: If a value is invalid
        """
        engine = cfg.get("engine") or {}
        capture = cfg.get("capture") or {}
        parser = cfg.get("parser") or {}
        log = cfg.get("log") or {}

        endpoint = engine.get("endpoint")
        routes = capture.get("routes") or []
        if isinstance(routes, str):
            routes = [r.strip() for r in routes.split(",") if r.strip()]

        try:
            settings = cls(
                state_dir=Path(cfg.get("state_dir") or DEFAULT_STATE_DIR).expanduser(),
                log_level=str(log.get("level") or "INFO").upper(),
                engine_binary=engine.get("binary") or None,
                simulate=bool(engine.get("simulate", False)),
                start_timeout=float(engine.get("start_timeout", DEFAULT_START_TIMEOUT)),
                poll_interval=float(engine.get("poll_interval", DEFAULT_POLL_INTERVAL)),
                endpoint=Endpoint.parse(str(endpoint)) if endpoint else None,
                capture_enabled=bool(capture.get("enabled", True)),
                capture_device=str(capture.get("device") or DEFAULT_CAPTURE_DEVICE),
                capture_address=str(capture.get("address") or DEFAULT_CAPTURE_ADDRESS),
                capture_mtu=int(capture.get("mtu", DEFAULT_CAPTURE_MTU)),
                capture_routes=tuple(str(r) for r in routes),
                relaxed_fallback=bool(parser.get("relaxed_fallback", False)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e

        settings.validate()
        return settings

    def validate(self) -> None:
        """Validate configuration"""
        if self.start_timeout <= 0:
            raise ConfigError(f"Invalid engine.start_timeout: {self.start_timeout}")
        if self.poll_interval <= 0:
            raise ConfigError(f"Invalid engine.poll_interval: {self.poll_interval}")
        if not (576 <= self.capture_mtu <= 65535):
            raise ConfigError(f"Invalid capture.mtu: {self.capture_mtu}")
        if "/" not in self.capture_address:
            raise ConfigError(f"Invalid capture.address: {self.capture_address}, expected CIDR")


class ConfigLoader:
    """Configuration loader with priority support"""

    def __init__(self):
        self._env_prefix = "AXIOM_"

    def load_toml(self, path: Path) -> Dict[str, Any]:
        """Load TOML configuration file"""
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        try:
            return tomllib.loads(path.read_text(encoding='utf-8'))
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Failed to parse TOML configuration: {e}") from e

    def load_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables"""
        config: Dict[str, Any] = {}

        # Map environment variables to config keys
        env_mappings = {
            "AXIOM_STATE_DIR": "state_dir",
            "AXIOM_LOG_LEVEL": "log.level",
            "XRAY_PATH": "engine.binary",
            "AXIOM_ENGINE_BINARY": "engine.binary",
            "AXIOM_ENGINE_SIMULATE": "engine.simulate",
            "AXIOM_ENGINE_START_TIMEOUT": "engine.start_timeout",
            "AXIOM_ENGINE_POLL_INTERVAL": "engine.poll_interval",
            "AXIOM_ENGINE_ENDPOINT": "engine.endpoint",
            "AXIOM_CAPTURE_ENABLED": "capture.enabled",
            "AXIOM_CAPTURE_DEVICE": "capture.device",
            "AXIOM_CAPTURE_ADDRESS": "capture.address",
            "AXIOM_CAPTURE_MTU": "capture.mtu",
            "AXIOM_CAPTURE_ROUTES": "capture.routes",
            "AXIOM_PARSER_RELAXED_FALLBACK": "parser.relaxed_fallback",
        }

        for env_key, config_key in env_mappings.items():
            value = os.getenv(env_key)
            if value:
                # Handle nested keys
                if "." in config_key:
                    section, key = config_key.split(".", 1)
                    config.setdefault(section, {})[key] = self._convert_value(value)
                else:
                    config[config_key] = self._convert_value(value)

        return config

    def _convert_value(self, value: str) -> Any:
        """Convert string value to appropriate type"""
        # Try boolean
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        # Try number
        for cast in (int, float):
            try:
                return cast(value)
            except ValueError:
                pass

        # Return as string
        return value

    def merge_configs(self, *configs: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge multiple configurations with priority.
        Later configs override earlier ones.
        """
        result: Dict[str, Any] = {}

        for config in configs:
            result = self._deep_merge(result, config)

        return result

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, skipping None overrides"""
        result = base.copy()

        for key, value in override.items():
            if value is None:
                continue
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def load(
        self,
        toml_path: Optional[Path] = None,
        cli_overrides: Optional[Dict[str, Any]] = None,
        use_env: bool = True,
    ) -> Dict[str, Any]:
        """
        Load configuration with priority: CLI > env > TOML > defaults

        Args:
            toml_path: Path to TOML configuration file
            cli_overrides: CLI parameter overrides
            use_env: Whether to load from environment variables

        Returns:
            Merged configuration dictionary
        """
        configs: List[Dict[str, Any]] = []

        # 1. Load TOML if provided
        if toml_path:
            configs.append(self.load_toml(Path(toml_path).expanduser()))

        # 2. Load environment variables
        if use_env:
            env_config = self.load_env()
            if env_config:
                configs.append(env_config)

        # 3. Apply CLI overrides (highest priority)
        if cli_overrides:
            configs.append(cli_overrides)

        # Merge all configs
        return self.merge_configs(*configs)

    def load_settings(
        self,
        toml_path: Optional[Path] = None,
        cli_overrides: Optional[Dict[str, Any]] = None,
        use_env: bool = True,
    ) -> AppSettings:
        """Load and materialize settings"""
        return AppSettings.from_dict(self.load(toml_path, cli_overrides, use_env))
