"""
Settings Configuration
Runtime configuration for the pricing agent, validated with Pydantic.

These are process-level knobs (where data lives, how hard to hit search
providers). Business settings edited by operators, such as vendors and
pricing rules, live in the settings store instead.
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class StorageSettings(BaseSettings):
    """Persistence backends"""
    backend: str = Field(default="disk", description="Store backend: memory, disk")
    data_dir: str = Field(default="./data/pricing", description="Directory for settings and run reports")
    catalog_path: Optional[str] = Field(default=None, description="JSON catalog file (optional)")

    class Config:
        env_prefix = "STORAGE_"


class SearchSettings(BaseSettings):
    """Availability search providers"""
    api_url: Optional[str] = Field(default=None, description="SearXNG-compatible JSON search endpoint")
    html_url: str = Field(default="https://html.duckduckgo.com/html/", description="HTML results endpoint")
    user_agent: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122 Safari/537.36",
        description="User-Agent for HTML search requests",
    )
    request_timeout: float = Field(default=12.0, description="HTTP timeout per request (seconds)")
    call_timeout: float = Field(default=20.0, description="Upper bound for one strategy call (seconds)")
    max_results_per_domain: int = Field(default=5, description="Result cap per vendor domain")

    class Config:
        env_prefix = "SEARCH_"


class AgentRuntimeSettings(BaseSettings):
    """Run orchestration"""
    job_grace_seconds: float = Field(default=5.0, description="Delay before clearing a finished job handle")
    recover_on_startup: bool = Field(default=True, description="Fail orphaned running reports on startup")
    run_lease_seconds: float = Field(default=120.0, description="Heartbeat lease after which a foreign running run counts as orphaned")
    llm_timeout: float = Field(default=60.0, description="OpenAI client timeout (seconds)")
    max_output_tokens: int = Field(default=300, description="Token cap for the web search answer")

    class Config:
        env_prefix = "AGENT_"


class LogSettings(BaseSettings):
    """Logging"""
    level: str = Field(default="INFO", description="Log level")
    file: Optional[str] = Field(default=None, description="Log file name under logs/")
    use_rich: bool = Field(default=True, description="Rich console output")

    class Config:
        env_prefix = "LOG_"


class Settings(BaseSettings):
    """Aggregated configuration"""

    storage: StorageSettings = Field(default_factory=StorageSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    agent: AgentRuntimeSettings = Field(default_factory=AgentRuntimeSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load ``config/.env`` (if present) into the environment, then build settings."""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            storage=StorageSettings(),
            search=SearchSettings(),
            agent=AgentRuntimeSettings(),
            log=LogSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Global settings singleton"""
    return Settings.load_from_env_file()


def get_storage_settings() -> StorageSettings:
    return get_settings().storage


def get_search_settings() -> SearchSettings:
    return get_settings().search


def get_agent_settings() -> AgentRuntimeSettings:
    return get_settings().agent


def get_log_settings() -> LogSettings:
    return get_settings().log
