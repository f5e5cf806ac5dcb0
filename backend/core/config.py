import yaml
import re
from pydantic_settings import BaseSettings
from functools import lru_cache
from pathlib import Path
from dotenv import load_dotenv
import os

# Load .env from project root
project_root = Path(__file__).parent.parent.parent
env_path = project_root / ".env"
load_dotenv(env_path)


def substitute_env_vars(value):
    """
    Recursively substitute ${VAR_NAME} or ${VAR_NAME:-default} patterns
    with environment variable values.
    """
    if isinstance(value, str):
        # Pattern matches ${VAR_NAME} or ${VAR_NAME:-default_value}
        pattern = r'\$\{([^}:]+)(?::-([^}]*))?\}'

        def replace_match(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else ""
            return os.environ.get(var_name, default_value)

        return re.sub(pattern, replace_match, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(item) for item in value]
    return value


def load_yaml_with_env(yaml_path: Path) -> dict:
    """Load YAML file with environment variable substitution."""
    if not yaml_path.exists():
        return {}

    with open(yaml_path) as f:
        raw_config = yaml.safe_load(f) or {}

    return substitute_env_vars(raw_config)


class GeminiSettings(BaseSettings):
    model: str = "gemini-1.5-flash"
    api_key: str | None = None
    request_timeout: float = 60.0  # seconds, enforced by the SDK call
    max_output_tokens: int = 8192


class ExtractionSettings(BaseSettings):
    """Retry, timeout and lane concurrency for extraction calls."""
    max_retries: int = 3
    initial_delay: float = 2.0
    max_delay: float = 15.0
    call_timeout: float = 90.0  # seconds, enforced by the orchestrator
    text_concurrency: int = 10
    vision_concurrency: int = 3


class BatchingSettings(BaseSettings):
    max_files: int = 10
    max_payload_mb: float = 12
    max_estimated_tokens: int = 75000
    image_heavy_max_files: int = 50
    image_heavy_max_payload_mb: float = 15
    image_heavy_max_estimated_tokens: int = 100000


class LimitSettings(BaseSettings):
    """Hard ceilings applied before batching."""
    max_single_file_mb: float = 10
    max_payload_mb: float = 10
    max_estimated_tokens: int = 75000


class TelemetrySettings(BaseSettings):
    max_entries: int = 100


class TaxonomySettings(BaseSettings):
    benchmarks_path: str = "config/biomarkers.yaml"


class Settings(BaseSettings):
    gemini: GeminiSettings = GeminiSettings()
    extraction: ExtractionSettings = ExtractionSettings()
    batching: BatchingSettings = BatchingSettings()
    limits: LimitSettings = LimitSettings()
    telemetry: TelemetrySettings = TelemetrySettings()
    taxonomy: TaxonomySettings = TaxonomySettings()

    class Config:
        env_file = ".env"
        env_nested_delimiter = "__"
        extra = "ignore"  # Ignore extra fields not in the model


@lru_cache()
def get_settings() -> Settings:
    """Load settings from YAML config file with environment variable substitution."""
    config_path = project_root / "config" / "settings.yaml"

    # Load YAML with ${VAR_NAME} substitution from .env
    yaml_config = load_yaml_with_env(config_path)

    # Environment variables take precedence via pydantic-settings
    return Settings(**yaml_config)
