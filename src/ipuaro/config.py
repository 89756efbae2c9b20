"""centralized configuration management using pydantic settings.

settings are loaded from environment variables (prefixed with IPUARO_) and an
optional .env file. per-project overrides live in .ipuaro.yaml at the project
root and are merged in by load_project_config.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_CONFIG_FILE = ".ipuaro.yaml"


class Settings(BaseSettings):
    """main settings class for ipuaro.

    attributes:
        llm_base_url: base url of an openai-compatible endpoint (ollama by default)
        llm_api_key: api key sent to the endpoint (ollama ignores it)
        llm_model: model name
        llm_timeout: request timeout in seconds
        context_window: context size of the model in tokens
        compression_threshold: token-usage ratio above which compression is flagged
        max_retries: retry cap per context key in the error handler
        auto_skip_parse_errors: skip parse errors without asking
        auto_retry_llm_errors: retry llm/timeout errors without asking
        max_tool_iterations: upper bound of model round-trips in one turn
        max_undo_entries: undo stack capacity
        max_input_history: input history capacity
        command_timeout: timeout of run_command in seconds
        extra_blacklist: additional blocked command patterns
        extra_whitelist: additional allowed command names
        ignore_patterns: additional ignore patterns for indexing
        data_dir: directory of the json storage backend
        log_level: logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: write logs to this file instead of stderr
    """

    model_config = SettingsConfigDict(
        env_prefix="IPUARO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # llm configuration
    llm_base_url: str = "http://localhost:11434/v1"
    llm_api_key: str = "ollama"
    llm_model: str = "qwen2.5-coder:7b-instruct"
    llm_timeout: float = Field(default=120.0, gt=0)
    context_window: int = Field(default=128_000, ge=1024)
    compression_threshold: float = Field(default=0.8, gt=0, le=1)

    # error handling
    max_retries: int = Field(default=3, ge=0)
    auto_skip_parse_errors: bool = True
    auto_retry_llm_errors: bool = False

    # session configuration
    max_tool_iterations: int = Field(default=20, ge=1)
    max_undo_entries: int = Field(default=10, ge=1)
    max_input_history: int = Field(default=100, ge=1)

    # tools
    command_timeout: int = Field(default=30, ge=1)
    extra_blacklist: list[str] = Field(default_factory=list)
    extra_whitelist: list[str] = Field(default_factory=list)

    # indexing and storage
    ignore_patterns: list[str] = Field(default_factory=list)
    data_dir: Path = Path.home() / ".ipuaro"

    log_level: str = "WARNING"
    log_file: Path | None = None


@lru_cache
def get_settings() -> Settings:
    """get the singleton settings instance.

    call get_settings.cache_clear() to reload settings if needed.
    """
    return Settings()


def load_project_config(project_root: Path) -> dict[str, Any]:
    """load .ipuaro.yaml from a project root if it exists.

    returns:
        the parsed mapping, or an empty dict
    """
    path = project_root / PROJECT_CONFIG_FILE
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {}


def settings_for_project(project_root: Path) -> Settings:
    """build settings with the project's .ipuaro.yaml applied on top."""
    base = get_settings()
    overrides = load_project_config(project_root)
    known = {k: v for k, v in overrides.items() if k in Settings.model_fields}
    if not known:
        return base
    return base.model_copy(update=known)
