"""
Configuration management for HARFLECT.
Provides default settings, environment variable support, and analysis profiles.
"""

import os
from dataclasses import dataclass, field, replace
from typing import List, Dict, Optional
import json
from pathlib import Path

from core.error_handling import ConfigError


RESPONSE_ENCODINGS = ("base64", "auto")


@dataclass
class AnalysisConfig:
    """Configuration for archive analysis."""

    # Host allow-list for match mode; empty means every host
    allowed_hosts: List[str] = field(default_factory=list)

    # Base64 printability filter, per mode
    dump_require_printable: bool = True
    match_require_printable: bool = False

    # Decoder
    max_depth: int = 32

    # Response bodies: "base64" decodes every body once (falling back to
    # the raw text), "auto" only those whose HAR content.encoding says so
    response_encoding: str = "base64"

    # Output
    include_empty: bool = False

    # Performance
    max_workers: int = 5
    enable_concurrent: bool = True

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    verbose: bool = False

    @classmethod
    def from_dict(cls, config_dict: Dict) -> 'AnalysisConfig':
        """Create config from dictionary."""
        return cls(**{k: v for k, v in config_dict.items() if k in cls.__annotations__})

    @classmethod
    def from_env(cls) -> 'AnalysisConfig':
        """Load config from environment variables."""
        env_config = {}

        env_mappings = {
            "HARFLECT_HOSTS": ("allowed_hosts", parse_hosts),
            "HARFLECT_MAX_DEPTH": ("max_depth", int),
            "HARFLECT_THREADS": ("max_workers", int),
            "HARFLECT_RESPONSE_ENCODING": ("response_encoding", str),
            "HARFLECT_LOG_LEVEL": ("log_level", str),
            "HARFLECT_LOG_FILE": ("log_file", str),
        }

        for env_var, (field_name, converter) in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                try:
                    env_config[field_name] = converter(value)
                except ValueError:
                    pass

        return cls(**env_config)

    def require_printable(self, match_mode: bool) -> bool:
        return self.match_require_printable if match_mode else self.dump_require_printable

    def to_dict(self) -> Dict:
        """Convert config to dictionary."""
        return {
            k: v for k, v in self.__dict__.items()
            if not k.startswith('_')
        }


ANALYSIS_PROFILES = {
    # Discard non-printable base64 payloads in both modes
    "strict": AnalysisConfig(
        dump_require_printable=True,
        match_require_printable=True,
    ),

    # Keep binary-looking base64 payloads everywhere
    "lax": AnalysisConfig(
        dump_require_printable=False,
        match_require_printable=False,
    ),
}


def read_config_file(config_path: str) -> Dict:
    try:
        with open(config_path, 'r') as f:
            config_dict = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Failed to load config from {config_path}: {e}")
    if not isinstance(config_dict, dict):
        raise ConfigError(f"Failed to load config from {config_path}: expected a JSON object")
    return config_dict


def parse_hosts(value: Optional[str]) -> List[str]:
    """Split a space-delimited host list."""
    if not value:
        return []
    return [host.lower() for host in value.split()]


def load_config(
    profile: Optional[str] = None,
    config_file: Optional[str] = None,
    use_env: bool = True,
    **overrides
) -> AnalysisConfig:
    """
    Load configuration with precedence: overrides > config_file > env > profile > defaults

    Args:
        profile: Name of predefined profile (strict, lax)
        config_file: Path to JSON config file
        use_env: Whether to load from environment variables
        **overrides: Direct config overrides; None values are ignored

    Returns:
        AnalysisConfig instance
    """
    if profile and profile.lower() in ANALYSIS_PROFILES:
        config = replace(ANALYSIS_PROFILES[profile.lower()])
    else:
        config = AnalysisConfig()

    defaults = AnalysisConfig()

    if use_env:
        env_config = AnalysisConfig.from_env()
        for key, value in env_config.to_dict().items():
            if value != getattr(defaults, key):  # Only override if changed from default
                setattr(config, key, value)

    if config_file:
        if not Path(config_file).exists():
            raise ConfigError(f"Config file not found: {config_file}")
        for key, value in read_config_file(config_file).items():
            if key in AnalysisConfig.__annotations__:
                setattr(config, key, value)

    for key, value in overrides.items():
        if value is not None and hasattr(config, key):
            setattr(config, key, value)

    if config.response_encoding not in RESPONSE_ENCODINGS:
        raise ConfigError(
            f"Unknown response encoding {config.response_encoding!r} "
            f"(expected one of: {', '.join(RESPONSE_ENCODINGS)})"
        )
    if isinstance(config.allowed_hosts, str):
        config.allowed_hosts = parse_hosts(config.allowed_hosts)
    config.allowed_hosts = [host.lower() for host in config.allowed_hosts]

    return config
