# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Runtime configuration.

Values come from (highest priority first) constructor arguments, ``RELAY_*``
environment variables, and a ``.env`` file in the working directory.
"""

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Model provider
    PROVIDER: str = Field(default="anthropic", description="Model provider: 'anthropic' or 'scripted'")
    ANTHROPIC_API_KEY: Optional[str] = Field(
        default=None,
        validation_alias="ANTHROPIC_API_KEY",
        description="API key for the Anthropic provider",
    )

    # Models
    MODEL: str = "claude-sonnet-4-20250514"
    FAST_MODEL: str = "claude-3-5-haiku-20241022"
    SUMMARY_MODEL: Optional[str] = Field(default=None, description="Defaults to FAST_MODEL")
    MAX_OUTPUT_TOKENS: int = 8192
    REASONING_BUDGET: Optional[int] = Field(default=None, ge=1024)

    # Agent loop
    MAX_TOOL_ITERATIONS: int = Field(default=10, ge=1)
    TOOL_CONCURRENCY: Optional[int] = Field(
        default=None, ge=1, description="Per-turn limit on concurrent tool executions"
    )

    # Jobs
    WORKER_COUNT: int = Field(default=1, ge=1)
    JOB_TIMEOUT: Optional[float] = Field(default=None, gt=0, description="Seconds before a job is reported as failed")
    JOBS_DIR: Path = Path.home() / ".relay_agent" / "jobs"

    # Output
    DEBOUNCE_MS: int = Field(default=500, ge=0)
    MAX_MESSAGE_LENGTH: int = Field(default=4096, ge=64)
    VERBOSE: bool = False
    TELEGRAM_BOT_TOKEN: Optional[str] = None

    # Web inspector
    WEB_HOST: str = "127.0.0.1"
    WEB_PORT: int = 8080
    PUBLIC_URL: Optional[str] = Field(default=None, description="Base URL used to build job links")

    LOG_LEVEL: str = "INFO"

    @property
    def summary_model(self) -> str:
        return self.SUMMARY_MODEL or self.FAST_MODEL

    @property
    def debounce_seconds(self) -> float:
        return self.DEBOUNCE_MS / 1000

    def job_link(self, job_id: str) -> Optional[str]:
        if not self.PUBLIC_URL:
            return None
        return f"{self.PUBLIC_URL.rstrip('/')}/jobs/{job_id}"


settings = Settings()
