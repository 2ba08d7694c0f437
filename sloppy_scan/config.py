"""Unified configuration management using YAML with environment overlay."""

import os
import yaml
import logging
from pathlib import Path
from functools import lru_cache
from typing import Dict, Any, Tuple
from pydantic import BaseModel, Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Repo-level configuration file
CONFIG_FILE = Path(".sloppy.yml")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field("INFO", description="Logging level")
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Format string for the stderr handler",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class ModelsConfig(BaseModel):
    """Model selection and input limits."""

    primary: str = Field(
        "openai/gpt-4o-mini", description="Model used for deep scans by default"
    )
    input_limits: Dict[str, int] = Field(
        default_factory=dict,
        description="Per-model input token ceilings, merged over the built-in table",
    )
    default_input_limit: int = Field(
        8000, description="Input token ceiling for unknown models", ge=1
    )
    provider_prefix: str = Field(
        "github/", description="Prefix that routes model ids through the LiteLLM provider"
    )
    request_timeout: float = Field(
        120.0, description="Per-request timeout in seconds", gt=0
    )


class ScanConfig(BaseModel):
    """Scan pipeline tuning."""

    deep_scan_threshold: int = Field(
        15, description="Max file count for a full-content (deep) scan", ge=0
    )
    concurrency: int = Field(
        3, description="Requests dispatched per batch", ge=1, le=16
    )
    stagger_seconds: float = Field(
        0.5, description="Start offset between requests of one batch", ge=0.0
    )
    batch_pause_seconds: float = Field(
        3.0, description="Minimum pause between batches", ge=0.0
    )
    split_pause_seconds: float = Field(
        4.5, description="Pause between the halves of a split chunk", ge=0.0
    )
    max_split_depth: int = Field(
        2, description="Max recursive halvings after a capacity error", ge=0, le=6
    )
    targeted_deep_scan_files: int = Field(
        5, description="Files re-scanned in full after a fingerprint scan", ge=0
    )
    verify_issues: bool = Field(
        True, description="Drop AI issues that fail local verification"
    )
    local_analysis: bool = Field(
        True, description="Run the pattern-based local scan before any model call"
    )
    ai_verification: bool = Field(
        True, description="Ask a low-tier model to confirm AI issues against real code"
    )
    verification_batch_size: int = Field(
        8, description="Issues confirmed per verification request", ge=1, le=32
    )
    verification_pause_seconds: float = Field(
        2.0, description="Pause between verification requests", ge=0.0
    )


class StateConfig(BaseModel):
    """Location of the persisted advisory state."""

    directory: str = Field(".sloppy", description="Workspace-relative state dir")
    cache_file: str = Field("scan-cache.json", description="Scan result cache")
    budget_file: str = Field("budget.json", description="Per-model request budget")


class Settings(BaseSettings):
    """Unified settings for sloppy-scan."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    state: StateConfig = Field(default_factory=StateConfig)

    model_config = SettingsConfigDict(
        env_prefix="SLOPPY_",
        env_nested_delimiter="__",  # Allows SLOPPY_SCAN__CONCURRENCY env var
        extra="ignore",
        validate_default=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        """Customize settings sources to include the YAML file and legacy env vars."""
        from pydantic_settings.sources import PydanticBaseSettingsSource

        class YamlConfigSource(PydanticBaseSettingsSource):
            """Load settings from the repo YAML file."""

            def get_field_value(
                self, field: FieldInfo, field_name: str
            ) -> Tuple[Any, str, bool]:
                data = self()
                if field_name in data:
                    return data[field_name], field_name, True
                return None, field_name, False

            def __call__(self) -> Dict[str, Any]:
                return cls._yaml_config_source()

        class LegacyEnvVars(PydanticBaseSettingsSource):
            """Load flat environment variables."""

            def get_field_value(
                self, field: FieldInfo, field_name: str
            ) -> Tuple[Any, str, bool]:
                data = self()
                if field_name in data:
                    return data[field_name], field_name, True
                return None, field_name, False

            def __call__(self) -> Dict[str, Any]:
                return cls._legacy_env_source()

        # Precedence (left to right - first source wins):
        # init > env_settings > legacy_env > yaml > defaults
        return (
            init_settings,
            env_settings,
            LegacyEnvVars(settings_cls),
            YamlConfigSource(settings_cls),
            file_secret_settings,
        )

    @classmethod
    def _yaml_config_source(cls) -> Dict[str, Any]:
        """Load configuration from the YAML file."""
        import sys

        # Under pytest, never pick up a real .sloppy.yml from the working tree
        # unless the caller points at one explicitly.
        if "pytest" in sys.modules and "SLOPPY_CONFIG_FILE" not in os.environ:
            return {}

        config_file = Path(os.getenv("SLOPPY_CONFIG_FILE", str(CONFIG_FILE)))
        if not config_file.exists():
            return {}

        try:
            with open(config_file) as f:
                config_data = yaml.safe_load(f) or {}
            logger.debug(f"Loaded configuration from {config_file}")
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load {config_file}: {e}")
            return {}

        if not isinstance(config_data, dict):
            logger.warning(f"Ignoring {config_file}: top level must be a mapping")
            return {}

        # Handle None values from YAML (e.g., "scan:" with no content)
        for key in list(config_data.keys()):
            if config_data[key] is None:
                config_data[key] = {}

        return config_data

    @classmethod
    def _legacy_env_source(cls) -> Dict[str, Any]:
        """Support flat environment variables."""
        config_data: Dict[str, Any] = {}

        legacy_mappings = {
            "SLOPPY_MODEL": ("models", "primary"),
            "GITHUB_MODELS_MODEL": ("models", "primary"),
            "SLOPPY_LOG_LEVEL": ("logging", "level"),
            "SLOPPY_STATE_DIR": ("state", "directory"),
        }

        for env_key, path in legacy_mappings.items():
            value = os.getenv(env_key)
            if value is None:
                continue
            current = config_data
            for key in path[:-1]:
                current = current.setdefault(key, {})
            # First mapping wins when two env vars target the same field
            current.setdefault(path[-1], value)

        return config_data

    def state_path(self, cwd: str, filename: str) -> Path:
        """Absolute path of a state file inside the workspace."""
        return Path(cwd) / self.state.directory / filename


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
