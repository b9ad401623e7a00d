"""
Configuration management for dep-bumper.

Provides configurable settings for registry access, resolution concurrency,
commit composition and logging. Values come from defaults, an optional
config file, and DEP_BUMPER_* environment variables, in that order.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

console = Console(stderr=True)

GROUP_BY_CHOICES = ("dependency", "file", "none")


@dataclass
class ResolveConfig:
    """Version resolution settings."""

    max_concurrent: int = 20
    rate_limit: float = 10.0
    timeout_seconds: int = 30


@dataclass
class NetworkConfig:
    """Network and registry configuration."""

    user_agent: str = "dep-bumper/1.0.0"
    registry_urls: Dict[str, str] = field(
        default_factory=lambda: {
            "npm": "https://registry.npmjs.org",
            "jsr": "https://jsr.io",
        }
    )
    connect_timeout: float = 10.0
    read_timeout: float = 30.0


@dataclass
class CommitConfig:
    """Commit sequence configuration."""

    prefix: str = "build(deps):"
    group_by: str = "dependency"
    pre_commit: List[str] = field(default_factory=list)
    post_commit: List[str] = field(default_factory=list)


@dataclass
class LoggingConfig:
    """Logging and error handling configuration."""

    log_level: str = "WARNING"
    enable_sensitive_data_masking: bool = True


@dataclass
class ToolConfig:
    """Main configuration containing all subsections."""

    resolve: ResolveConfig = field(default_factory=ResolveConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    commit: CommitConfig = field(default_factory=CommitConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_global_config: Optional[ToolConfig] = None


def validate_config_values(config: ToolConfig) -> List[str]:
    """
    Validate configuration values and return any errors.

    Args:
        config: Configuration to validate

    Returns:
        List[str]: List of validation errors (empty if valid)
    """
    errors = []

    if config.resolve.max_concurrent <= 0:
        errors.append("resolve.max_concurrent must be positive")
    if config.resolve.rate_limit <= 0:
        errors.append("resolve.rate_limit must be positive")
    if config.resolve.timeout_seconds <= 0:
        errors.append("resolve.timeout_seconds must be positive")

    if config.network.connect_timeout <= 0:
        errors.append("network.connect_timeout must be positive")
    if config.network.read_timeout <= 0:
        errors.append("network.read_timeout must be positive")
    for registry in ("npm", "jsr"):
        if not config.network.registry_urls.get(registry):
            errors.append(f"network.registry_urls.{registry} must be set")

    if config.commit.group_by not in GROUP_BY_CHOICES:
        errors.append(
            f"commit.group_by must be one of: {', '.join(GROUP_BY_CHOICES)}"
        )

    return errors


def load_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """Load config from file."""
    if not config_path.exists():
        return None

    try:
        with open(config_path, encoding="utf-8") as f:
            if config_path.suffix.lower() in [".yaml", ".yml"]:
                return yaml.safe_load(f)
            elif config_path.suffix.lower() == ".json":
                return json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(
            f"⚠️  Error loading config from {config_path}: {e}", style="yellow"
        )

    return None


def find_config_file() -> Optional[Path]:
    """Find config file in standard locations."""
    locations = [
        Path.cwd() / ".dep-bumper.json",
        Path.cwd() / ".dep-bumper.yaml",
        Path.cwd() / ".dep-bumper.yml",
        Path.home() / ".config" / "dep-bumper" / "config.json",
        Path.home() / ".config" / "dep-bumper" / "config.yaml",
    ]

    for location in locations:
        if location.exists():
            return location

    return None


def load_environment_overrides(config: ToolConfig) -> None:
    """Load environment variable overrides."""

    def get_env_int(key: str) -> Optional[int]:
        try:
            return int(os.environ[key]) if key in os.environ else None
        except ValueError:
            console.print(f"⚠️  Invalid integer value for {key}, using default", style="yellow")
            return None

    def get_env_float(key: str) -> Optional[float]:
        try:
            return float(os.environ[key]) if key in os.environ else None
        except ValueError:
            console.print(f"⚠️  Invalid float value for {key}, using default", style="yellow")
            return None

    def get_env_list(key: str) -> Optional[List[str]]:
        value = os.environ.get(key)
        if value is None:
            return None
        return [item.strip() for item in value.split(",") if item.strip()]

    if max_concurrent := get_env_int("DEP_BUMPER_MAX_CONCURRENT"):
        config.resolve.max_concurrent = max_concurrent
    if rate_limit := get_env_float("DEP_BUMPER_RATE_LIMIT"):
        config.resolve.rate_limit = rate_limit
    if timeout := get_env_int("DEP_BUMPER_TIMEOUT"):
        config.resolve.timeout_seconds = timeout

    if user_agent := os.environ.get("DEP_BUMPER_USER_AGENT"):
        config.network.user_agent = user_agent
    if npm_registry := os.environ.get("DEP_BUMPER_NPM_REGISTRY"):
        config.network.registry_urls["npm"] = npm_registry.rstrip("/")
    if jsr_registry := os.environ.get("DEP_BUMPER_JSR_REGISTRY"):
        config.network.registry_urls["jsr"] = jsr_registry.rstrip("/")
    if connect_timeout := get_env_float("DEP_BUMPER_CONNECT_TIMEOUT"):
        config.network.connect_timeout = connect_timeout
    if read_timeout := get_env_float("DEP_BUMPER_READ_TIMEOUT"):
        config.network.read_timeout = read_timeout

    if (prefix := os.environ.get("DEP_BUMPER_COMMIT_PREFIX")) is not None:
        config.commit.prefix = prefix
    if group_by := os.environ.get("DEP_BUMPER_GROUP_BY"):
        config.commit.group_by = group_by.lower()
    if (pre_commit := get_env_list("DEP_BUMPER_PRE_COMMIT")) is not None:
        config.commit.pre_commit = pre_commit
    if (post_commit := get_env_list("DEP_BUMPER_POST_COMMIT")) is not None:
        config.commit.post_commit = post_commit

    if log_level := os.environ.get("DEP_BUMPER_LOG_LEVEL"):
        config.logging.log_level = log_level.upper()


def apply_config_section(
    config: Any, section_data: Dict[str, Any], section_name: str
) -> None:
    """Apply configuration from dictionary to config section."""
    for key, value in section_data.items():
        if hasattr(config, key):
            if isinstance(getattr(config, key), dict) and isinstance(value, dict):
                getattr(config, key).update(value)
            else:
                setattr(config, key, value)
        else:
            console.print(
                f"⚠️  Unknown config key in {section_name}: {key}", style="yellow"
            )


def load_config(config_path: Optional[Path] = None) -> ToolConfig:
    """Load configuration from file and environment."""
    global _global_config

    if _global_config is not None and config_path is None:
        return _global_config

    config = ToolConfig()

    config_file = config_path or find_config_file()
    if config_file:
        file_config = load_config_file(config_file)
        if isinstance(file_config, dict):
            for section in ("resolve", "network", "commit", "logging"):
                if isinstance(file_config.get(section), dict):
                    apply_config_section(
                        getattr(config, section), file_config[section], section
                    )

    load_environment_overrides(config)

    validation_errors = validate_config_values(config)
    if validation_errors:
        console.print("⚠️  Configuration validation errors:", style="red")
        for error in validation_errors:
            console.print(f"  • {error}", style="red")
        console.print("Using default values for invalid settings.", style="yellow")
        config = _replace_invalid_sections(config, validation_errors)

    _global_config = config
    return config


def _replace_invalid_sections(config: ToolConfig, errors: List[str]) -> ToolConfig:
    defaults = ToolConfig()
    for section in {error.split(".", 1)[0] for error in errors}:
        setattr(config, section, getattr(defaults, section))
    return config


def get_config() -> ToolConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _global_config
    _global_config = None


def create_sample_config() -> str:
    """Generate sample configuration."""
    sample_config = {
        "resolve": {
            "max_concurrent": 20,
            "rate_limit": 10.0,
            "timeout_seconds": 30,
        },
        "network": {
            "user_agent": "dep-bumper/1.0.0",
            "registry_urls": {
                "npm": "https://registry.npmjs.org",
                "jsr": "https://jsr.io",
            },
            "connect_timeout": 10.0,
            "read_timeout": 30.0,
        },
        "commit": {
            "prefix": "build(deps):",
            "group_by": "dependency",
            "pre_commit": [],
            "post_commit": [],
        },
        "logging": {
            "log_level": "WARNING",
            "enable_sensitive_data_masking": True,
        },
    }

    return json.dumps(sample_config, indent=2)
