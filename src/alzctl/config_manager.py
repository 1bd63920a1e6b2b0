"""User configuration stored in ~/.alzctl/config.toml.

Holds defaults for deployments (environment, location, spoke count, the
ManagedBy tag value) and the break-glass accounts every Conditional Access
policy must exclude.

Security:
- Config file permissions: 0600 (owner read/write only)
- Path validation (config must live under ~/.alzctl or the working directory)
- Unknown keys rejected
"""

import logging
import os
import tempfile
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

try:
    import tomli  # type: ignore[import]
except ImportError:
    try:
        import tomllib as tomli  # type: ignore[import]
    except ImportError as e:
        raise ImportError("toml library not available. Install with: pip install tomli") from e

try:
    import tomlkit
except ImportError as e:
    raise ImportError("tomlkit library not available. Install with: pip install tomlkit") from e

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration operations fail."""

    pass


@dataclass
class AlzConfig:
    """alzctl configuration data."""

    default_environment: str = "prod"
    default_location: str = "eastus"
    default_spoke_count: int = 3
    managed_by: str = "ALZ-v3-Local"
    break_glass_accounts: list[str] = field(default_factory=list)
    break_glass_groups: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def deployment_defaults(self) -> dict[str, Any]:
        """Values that seed DeploymentParameters."""
        return {
            "environment": self.default_environment,
            "location": self.default_location,
            "spoke_count": self.default_spoke_count,
            "managed_by": self.managed_by,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AlzConfig":
        """Create from dictionary.

        Raises:
            ConfigError: On unknown keys or values of the wrong type
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config key(s): {', '.join(unknown)}")

        values = {key: _coerce(key, value) for key, value in data.items()}
        return cls(**values)


LIST_KEYS = ("break_glass_accounts", "break_glass_groups")
INT_KEYS = ("default_spoke_count",)


def _coerce(key: str, value: Any) -> Any:
    if key in LIST_KEYS:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return list(value)
        raise ConfigError(f"{key} must be a list of strings")
    if key in INT_KEYS:
        if isinstance(value, bool):
            raise ConfigError(f"{key} must be an integer")
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{key} must be an integer") from e
    if not isinstance(value, str):
        raise ConfigError(f"{key} must be a string")
    return value


class ConfigManager:
    """Manage the alzctl configuration file."""

    DEFAULT_CONFIG_DIR = Path.home() / ".alzctl"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    @classmethod
    def _validate_config_path(cls, path: Path) -> Path:
        """Ensure the path is within ~/.alzctl, the CWD or the temp dir.

        Raises:
            ConfigError: If path is outside allowed directories
        """
        resolved_path = path.resolve()
        allowed_dirs = [
            cls.DEFAULT_CONFIG_DIR.resolve(),
            Path.cwd().resolve(),
            Path(tempfile.gettempdir()).resolve(),
        ]
        for allowed_dir in allowed_dirs:
            try:
                resolved_path.relative_to(allowed_dir)
                return resolved_path
            except ValueError:
                continue

        raise ConfigError(
            f"Config path outside allowed directories: {resolved_path}\n"
            f"Allowed directories:\n"
            f"  - {cls.DEFAULT_CONFIG_DIR}\n"
            f"  - {Path.cwd()}"
        )

    @classmethod
    def get_config_path(cls, custom_path: str | None = None) -> Path:
        if custom_path:
            return cls._validate_config_path(Path(custom_path).expanduser())
        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def ensure_config_dir(cls) -> Path:
        try:
            cls.DEFAULT_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
            os.chmod(cls.DEFAULT_CONFIG_DIR, 0o700)
        except OSError as e:
            raise ConfigError(f"Failed to create config directory: {e}") from e
        return cls.DEFAULT_CONFIG_DIR

    @classmethod
    def load_config(cls, custom_path: str | None = None) -> AlzConfig:
        """Load configuration; defaults when the file does not exist.

        Raises:
            ConfigError: If the file cannot be read or holds invalid values
        """
        config_path = cls.get_config_path(custom_path)
        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return AlzConfig()

        try:
            mode = config_path.stat().st_mode & 0o777
            if mode & 0o077:
                logger.warning(
                    f"Config file has insecure permissions: {oct(mode)}. Fixing to 0600..."
                )
                os.chmod(config_path, 0o600)

            with open(config_path, "rb") as f:
                data = tomli.load(f)  # type: ignore[attr-defined]
        except (OSError, tomli.TOMLDecodeError) as e:  # type: ignore[attr-defined]
            raise ConfigError(f"Failed to load config: {e}") from e

        logger.debug(f"Loaded config from: {config_path}")
        return AlzConfig.from_dict(data)

    @classmethod
    def save_config(cls, config: AlzConfig, custom_path: str | None = None) -> Path:
        """Write configuration atomically with 0600 permissions.

        Raises:
            ConfigError: If saving fails
        """
        temp_path: Path | None = None
        try:
            if custom_path:
                config_path = cls._validate_config_path(Path(custom_path).expanduser())
                config_path.parent.mkdir(parents=True, exist_ok=True)
            else:
                cls.ensure_config_dir()
                config_path = cls.DEFAULT_CONFIG_FILE

            temp_path = config_path.with_suffix(".tmp")

            # Keep comments and formatting of an existing file
            if config_path.exists():
                with open(config_path) as f:
                    doc = tomlkit.load(f)
            else:
                doc = tomlkit.document()
            for key, value in config.to_dict().items():
                doc[key] = value

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)
            os.chmod(temp_path, 0o600)
            temp_path.replace(config_path)
        except OSError as e:
            if temp_path and temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

        logger.debug(f"Saved config to: {config_path}")
        return config_path

    @classmethod
    def set_value(cls, key: str, value: Any, custom_path: str | None = None) -> AlzConfig:
        """Set one key and save.

        Raises:
            ConfigError: On unknown keys or invalid values
        """
        config = cls.load_config(custom_path)
        if key not in {f.name for f in fields(AlzConfig)}:
            raise ConfigError(
                f"Unknown config key: {key}. Valid keys: "
                f"{', '.join(f.name for f in fields(AlzConfig))}"
            )
        setattr(config, key, _coerce(key, value))
        cls.save_config(config, custom_path)
        return config


__all__ = ["AlzConfig", "ConfigError", "ConfigManager"]
