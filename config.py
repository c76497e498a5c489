"""Configuration management for the Gleaner pipeline.

This module provides centralized configuration for all pipeline components.
Settings are loaded from environment variables with sensible defaults; the
CLI then overrides individual fields with dataclasses.replace(). The
resulting Config is immutable and passed explicitly to every component.

Environment Variables:
    Required:
        GEMINI_API_KEY: Google Gemini API key for the generation service

    Models (PydanticAI format - provider:model):
        MAP_MODEL: Model for per-segment summaries (map phase)
        REDUCE_MODEL: Model for the final consolidation (reduce phase)

    Input / Output:
        SOURCE_FILE: Source list (local path, gs://bucket/object or http(s) URL)
        OUTPUT_PATH: Destination (local path, gs://bucket/object, empty = stdout preview)
        LANGUAGE: Output language ('en' or 'ja')
        PREVIEW_LINES: Lines printed when no output path is set

    Timeouts (seconds):
        FETCH_TIMEOUT: Per-request timeout for the web extractor
        LLM_TIMEOUT: Per-call timeout for the generation service
        RUN_TIMEOUT: Deadline for the whole run

    Concurrency:
        MAX_FETCH_CONCURRENCY: Parallel fetch workers
        MAX_MAP_CONCURRENCY: Parallel map-phase workers
        MAP_RATE_INTERVAL: Minimum spacing between map calls (shared ticker)

    Fetching:
        INITIAL_FETCH_DELAY: Cool-down after the first fetch batch
        RETRY_FETCH_DELAY: Cool-down before the retry pass
        HTTP_MAX_RETRIES: Low-level HTTP retries per request
        RETRY_BASE_DELAY: Base delay for HTTP exponential backoff

    Segmentation:
        MAX_SEGMENT_CHARS: Maximum characters per map segment

    Optional Features:
        ENABLE_LOGFIRE: Enable Logfire/OpenTelemetry tracing
        LOGFIRE_TOKEN: Logfire authentication token

    Logging:
        LOG_DIR: Directory for log files
        LOG_LEVEL: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_BACKUP_COUNT: Number of rotated log files to keep
        LOG_MAX_BYTES: Max log file size in bytes (0 = time-based rotation)
        LOG_FORMAT: Log format ('text' or 'json' for structured logging)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from errors import ConfigError

LANGUAGES = ("en", "ja")


def _env(key: str, default: str = "") -> str:
    """Get string environment variable with optional default."""
    return os.environ.get(key, default)


def _env_int(key: str, default: int) -> int:
    """Get integer environment variable with default.

    Raises:
        ConfigError: If value is set but cannot be parsed as integer
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        raise ConfigError(f"Invalid integer value for {key}: '{val}'")


def _env_float(key: str, default: float) -> float:
    """Get float environment variable with default.

    Raises:
        ConfigError: If value is set but cannot be parsed as float
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return float(val)
    except ValueError:
        raise ConfigError(f"Invalid float value for {key}: '{val}'")


def _env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable with default.

    Recognizes truthy values: '1', 'true', 'yes', 'on'
    Recognizes falsy values: '0', 'false', 'no', 'off'
    """
    val = os.environ.get(key, "").lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    return default


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables.

    Use Config.load() to create an instance from the environment and
    dataclasses.replace() to derive a copy with CLI overrides.

    Example:
        >>> config = Config.load()
        >>> if error := config.validate():
        ...     print(f"Config error: {error}")
    """

    # === Required ===
    gemini_api_key: str = ""  # GEMINI_API_KEY - Google AI API key

    # === AI Models ===
    # PydanticAI format: provider:model, or openai:{name}@{base_url} for local servers
    map_model: str = "google-gla:gemini-2.5-flash"  # MAP_MODEL - Per-segment summaries
    reduce_model: str = "google-gla:gemini-2.5-pro"  # REDUCE_MODEL - Final consolidation

    # === Input / Output ===
    source_file: str = ""  # SOURCE_FILE - Newline-delimited source list
    output_path: str = "output/output_reduce_final.md"  # OUTPUT_PATH - '' = stdout preview
    language: str = "en"  # LANGUAGE - 'en' or 'ja'
    preview_lines: int = 10  # PREVIEW_LINES - Stdout preview length

    # === Timeouts (seconds) ===
    fetch_timeout: float = 15.0  # FETCH_TIMEOUT - Per HTTP request
    llm_timeout: float = 300.0  # LLM_TIMEOUT - Per generation call
    run_timeout: float = 1800.0  # RUN_TIMEOUT - Whole run deadline

    # === Concurrency ===
    max_fetch_concurrency: int = 5  # MAX_FETCH_CONCURRENCY
    max_map_concurrency: int = 2  # MAX_MAP_CONCURRENCY
    map_rate_interval: float = 2.0  # MAP_RATE_INTERVAL - Seconds between map calls

    # === Fetch Retry Behavior ===
    initial_fetch_delay: float = 2.0  # INITIAL_FETCH_DELAY - Cool-down after first batch
    retry_fetch_delay: float = 5.0  # RETRY_FETCH_DELAY - Cool-down before retry pass
    http_max_retries: int = 2  # HTTP_MAX_RETRIES - Low-level retries per request
    retry_base_delay: float = 1.0  # RETRY_BASE_DELAY - Base delay for exponential backoff

    # === Segmentation ===
    max_segment_chars: int = 400_000  # MAX_SEGMENT_CHARS

    # === Output Directories ===
    log_dir: Path = field(default_factory=lambda: Path("log"))  # LOG_DIR

    # === Logging Configuration ===
    log_level: str = "INFO"  # LOG_LEVEL - DEBUG, INFO, WARNING, ERROR
    log_backup_count: int = 30  # LOG_BACKUP_COUNT - Number of rotated logs to keep
    log_max_bytes: int = 0  # LOG_MAX_BYTES - Max file size (0 = time-based rotation)
    log_format: str = "text"  # LOG_FORMAT - 'text' or 'json' for structured logging

    # === Optional: Observability ===
    enable_logfire: bool = False  # ENABLE_LOGFIRE - Enable distributed tracing
    logfire_token: str = ""  # LOGFIRE_TOKEN - Authentication token

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            gemini_api_key=_env("GEMINI_API_KEY"),
            map_model=_env("MAP_MODEL", "google-gla:gemini-2.5-flash"),
            reduce_model=_env("REDUCE_MODEL", "google-gla:gemini-2.5-pro"),
            source_file=_env("SOURCE_FILE"),
            output_path=_env("OUTPUT_PATH", "output/output_reduce_final.md"),
            language=_env("LANGUAGE", "en").lower(),
            preview_lines=_env_int("PREVIEW_LINES", 10),
            fetch_timeout=_env_float("FETCH_TIMEOUT", 15.0),
            llm_timeout=_env_float("LLM_TIMEOUT", 300.0),
            run_timeout=_env_float("RUN_TIMEOUT", 1800.0),
            max_fetch_concurrency=_env_int("MAX_FETCH_CONCURRENCY", 5),
            max_map_concurrency=_env_int("MAX_MAP_CONCURRENCY", 2),
            map_rate_interval=_env_float("MAP_RATE_INTERVAL", 2.0),
            initial_fetch_delay=_env_float("INITIAL_FETCH_DELAY", 2.0),
            retry_fetch_delay=_env_float("RETRY_FETCH_DELAY", 5.0),
            http_max_retries=_env_int("HTTP_MAX_RETRIES", 2),
            retry_base_delay=_env_float("RETRY_BASE_DELAY", 1.0),
            max_segment_chars=_env_int("MAX_SEGMENT_CHARS", 400_000),
            log_dir=Path(_env("LOG_DIR", "log")),
            enable_logfire=_env_bool("ENABLE_LOGFIRE", False),
            logfire_token=_env("LOGFIRE_TOKEN"),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            log_backup_count=_env_int("LOG_BACKUP_COUNT", 30),
            log_max_bytes=_env_int("LOG_MAX_BYTES", 0),
            log_format=_env("LOG_FORMAT", "text").lower(),
        )

    def validate(self) -> str | None:
        """Validate configuration for required fields and valid values.

        Returns:
            Error message string if invalid, None if valid.
        """
        if not self.gemini_api_key and not _all_local(self.map_model, self.reduce_model):
            return "GEMINI_API_KEY environment variable (or --api-key) is required"
        if not self.source_file:
            return "A source list is required (SOURCE_FILE or --url-file)"
        if not self.map_model.strip():
            return "Map model name must not be empty"
        if not self.reduce_model.strip():
            return "Reduce model name must not be empty"
        if self.language not in LANGUAGES:
            return f"Invalid LANGUAGE '{self.language}' - must be 'en' or 'ja'"
        if self.max_fetch_concurrency < 1:
            return "Parallel fetch count must be at least 1"
        if self.max_map_concurrency < 1:
            return "MAX_MAP_CONCURRENCY must be at least 1"
        if self.max_segment_chars <= 0:
            return "MAX_SEGMENT_CHARS must be positive"
        if self.fetch_timeout <= 0:
            return "FETCH_TIMEOUT must be positive"
        if self.llm_timeout <= 0:
            return "LLM_TIMEOUT must be positive"
        if self.run_timeout < 0:
            return "RUN_TIMEOUT must be non-negative"
        if min(self.map_rate_interval, self.initial_fetch_delay, self.retry_fetch_delay) < 0:
            return "Delays and rate intervals must be non-negative"
        if self.http_max_retries < 0:
            return "HTTP_MAX_RETRIES must be non-negative"
        if self.preview_lines < 0:
            return "PREVIEW_LINES must be non-negative"
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return f"Invalid LOG_LEVEL '{self.log_level}' - must be DEBUG, INFO, WARNING, ERROR, or CRITICAL"
        if self.log_format not in ("text", "json"):
            return f"Invalid LOG_FORMAT '{self.log_format}' - must be 'text' or 'json'"
        if self.log_backup_count < 0:
            return "LOG_BACKUP_COUNT must be non-negative"
        if self.log_max_bytes < 0:
            return "LOG_MAX_BYTES must be non-negative"
        return None

    def public_dict(self) -> dict[str, object]:
        """Effective settings with secrets masked, for the config command."""
        return {
            "gemini_api_key": "set" if self.gemini_api_key else "",
            "map_model": self.map_model,
            "reduce_model": self.reduce_model,
            "source_file": self.source_file,
            "output_path": self.output_path,
            "language": self.language,
            "fetch_timeout": self.fetch_timeout,
            "llm_timeout": self.llm_timeout,
            "run_timeout": self.run_timeout,
            "max_fetch_concurrency": self.max_fetch_concurrency,
            "max_map_concurrency": self.max_map_concurrency,
            "map_rate_interval": self.map_rate_interval,
            "initial_fetch_delay": self.initial_fetch_delay,
            "retry_fetch_delay": self.retry_fetch_delay,
            "http_max_retries": self.http_max_retries,
            "max_segment_chars": self.max_segment_chars,
            "log_dir": str(self.log_dir),
            "log_level": self.log_level,
            "log_format": self.log_format,
            "enable_logfire": self.enable_logfire,
        }


def parse_local_model(model_str: str) -> tuple[str, str] | None:
    """Parse local model string into (model_name, base_url) or None if not local."""
    if model_str.startswith("openai:") and "@" in model_str:
        rest = model_str[7:]
        model_name, base_url = rest.split("@", 1)
        return model_name, base_url
    return None


def _all_local(*models: str) -> bool:
    """True when every model points at a local OpenAI-compatible server."""
    return all(parse_local_model(m) is not None for m in models)
