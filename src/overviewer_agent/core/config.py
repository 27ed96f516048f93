"""Configuration loading and validation."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/overviewer.yaml")


class QueueConfig(BaseModel):
    """Work queue settings."""
    backend: Literal["file", "redis"] = "file"

    # File backend
    root: Path = Field(default=Path(".overviewer"))

    # Redis backend
    redis_url: str = "redis://localhost:6379"
    stream: str = "job-queue"
    group: str = "processors"

    block_ms: int = 5000
    reclaim_idle_ms: int = 600_000  # Pending entries idle this long may be reclaimed

    # Job-level retry policy
    max_retries: int = 5
    backoff_initial: float = 1.0
    backoff_multiplier: float = 2.0
    backoff_max: float = 60.0

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"max_retries must be >= 0, got {v}")
        return v


class AgentLoopConfig(BaseModel):
    """Agent loop settings."""
    max_iterations: int = 12
    tool_similarity_threshold: float = 0.7

    @field_validator("max_iterations")
    @classmethod
    def validate_max_iterations(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_iterations must be >= 1, got {v}")
        return v

    @field_validator("tool_similarity_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"tool_similarity_threshold must be within [0, 1], got {v}")
        return v


class LLMConfig(BaseModel):
    """Model provider configuration."""
    provider: Literal["litellm", "claude_bridge"] = "litellm"

    model: str = "gpt-4o"
    temperature: float = 0.1
    max_tokens: int = 4096
    timeout: int = 120

    # LiteLLM direct settings
    api_key: Optional[str] = None
    api_base: Optional[str] = None

    # Claude bridge settings
    bridge_url: str = "http://localhost:8001"

    # Shared retry/rate-limit policy
    max_attempts: int = 5
    initial_delay: float = 1.0
    max_delay: float = 60.0
    backoff_multiplier: float = 2.0
    jitter: float = 0.2
    min_request_interval: float = 0.1

    @field_validator("bridge_url")
    @classmethod
    def validate_bridge_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"bridge_url must start with http:// or https://, got '{v}'")
        return v.rstrip("/")

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_attempts must be >= 1, got {v}")
        return v


class ContextConfig(BaseModel):
    """Conversation history budget."""
    max_tokens: int = 8000
    tokens_per_char: float = 0.25
    keep_ratio: float = 0.7


class GitHubConfig(BaseModel):
    """GitHub App credentials and PR conventions."""
    app_id: Optional[str] = None
    private_key: Optional[str] = None
    private_key_path: Optional[Path] = None
    # Static token for local runs without a GitHub App
    token: Optional[str] = None
    api_url: str = "https://api.github.com"
    clone_host: str = "github.com"

    branch_prefix: str = "overviewer-agent"
    base_branch: Optional[str] = None  # None = repository default branch
    commit_author_name: str = "overviewer-agent[bot]"
    commit_author_email: str = "overviewer-agent[bot]@users.noreply.github.com"

    token_max_attempts: int = 5
    token_initial_delay: float = 1.0
    token_max_delay: float = 30.0
    request_timeout: int = 10

    def load_private_key(self) -> Optional[str]:
        """Inline key wins over key file; literal ``\\n`` sequences are unescaped."""
        if self.private_key:
            return self.private_key.replace("\\n", "\n")
        if self.private_key_path and self.private_key_path.exists():
            return self.private_key_path.read_text()
        return None


class WorkspaceConfig(BaseModel):
    """Per-job workspace settings."""
    root: Path = Field(default=Path("/tmp/overviewer-workspaces"))
    clone_depth: int = 1
    git_timeout: int = 300


class EmbeddingsConfig(BaseModel):
    """Embedding model used for tool fallback, history compression and code search."""
    enabled: bool = True
    model: str = "nomic-ai/nomic-embed-text-v1.5"
    dimensions: int = 256
    code_search: bool = False
    index_dir: Path = Field(default=Path(".overviewer/index"))
    n_results: int = 5


class ToolsConfig(BaseModel):
    """Tool execution limits."""
    command_timeout: int = 30
    max_command_timeout: int = 300
    max_output_bytes: int = 1024 * 1024
    max_read_bytes: int = 512 * 1024


class LoggingConfig(BaseModel):
    """Logging output."""
    level: str = "INFO"
    log_dir: Path = Field(default=Path("logs"))
    use_file: bool = True


class OverviewerConfig(BaseSettings):
    """Main configuration."""
    queue: QueueConfig = Field(default_factory=QueueConfig)
    agent: AgentLoopConfig = Field(default_factory=AgentLoopConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    embeddings: EmbeddingsConfig = Field(default_factory=EmbeddingsConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    class Config:
        env_prefix = "OVERVIEWER_"
        env_nested_delimiter = "__"
        env_file = ".env"
        extra = "ignore"

    @model_validator(mode="after")
    def validate_code_search(self) -> "OverviewerConfig":
        if self.embeddings.code_search and not self.embeddings.enabled:
            raise ValueError("embeddings.code_search requires embeddings.enabled")
        return self


# Module-level mtime-based config cache: path -> (parsed_config, file_mtime)
_config_cache: Dict[str, tuple] = {}


def _get_cached_or_load(resolved_path: Path, loader):
    """Return cached config if file mtime unchanged, else reload."""
    key = str(resolved_path)
    try:
        current_mtime = resolved_path.stat().st_mtime
    except FileNotFoundError:
        _config_cache.pop(key, None)
        return None

    cached = _config_cache.get(key)
    if cached is not None:
        cached_result, cached_mtime = cached
        if cached_mtime == current_mtime:
            return cached_result

    result = loader(resolved_path)
    _config_cache[key] = (result, current_mtime)
    return result


def _load_config_from_file(config_path: Path) -> OverviewerConfig:
    """Internal loader (no caching)."""
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}
    data = _expand_env_vars(data)
    return OverviewerConfig(**data)


def load_config(config_path: Path = DEFAULT_CONFIG_PATH) -> OverviewerConfig:
    """Load configuration from YAML file.

    Uses mtime-based caching: returns the cached config if the file hasn't changed.
    """
    if not config_path.exists():
        logger.warning(
            f"Config file not found: {config_path}. Using default configuration "
            "plus OVERVIEWER_* environment variables."
        )
        return OverviewerConfig()

    result = _get_cached_or_load(config_path.resolve(), _load_config_from_file)
    return result if result is not None else OverviewerConfig()


def clear_config_cache() -> None:
    """Clear the module-level config cache. Useful for tests."""
    _config_cache.clear()


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ``${VAR}`` references in config data.

    Args:
        data: Config data to process
        _path: Internal tracking for error messages (e.g., "github.private_key")
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        env_var = data[2:-1]
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(
                f"Environment variable '{env_var}' not set (referenced at config path: {_path or 'root'}). "
                f"The literal string '{data}' will be used, which may cause errors."
            )
            return data
        return value
    return data
