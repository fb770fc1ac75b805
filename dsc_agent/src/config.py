# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Runtime configuration, read from the environment.

The CLI loads a `.env` file with python-dotenv before anything reads these
values. API keys are not part of the settings object; they are looked up
at call time (see `llm.models.get_api_key`).
"""

import os

from pathlib import Path
from pydantic import BaseModel, Field


def _env(name: str, default: str) -> str:
    return os.getenv(name, default)


class Settings(BaseModel):
    MODEL: str = Field(default_factory=lambda: _env("DSC_MODEL", "deepseek-v3.2"))
    LOG_LEVEL: str = Field(default_factory=lambda: _env("DSC_LOG_LEVEL", "WARNING").upper())

    # Agent loop
    MAX_STEPS: int = Field(default_factory=lambda: int(_env("DSC_MAX_STEPS", "100")))
    MEMORY_MAX_MESSAGES: int = Field(
        default_factory=lambda: int(_env("DSC_MEMORY_MAX_MESSAGES", "100"))
    )
    STUCK_WINDOW: int = Field(default_factory=lambda: int(_env("DSC_STUCK_WINDOW", "4")))
    STUCK_MIN_REPEATS: int = Field(
        default_factory=lambda: int(_env("DSC_STUCK_MIN_REPEATS", "2"))
    )

    # Timeouts, in seconds
    LLM_TIMEOUT: float = Field(default_factory=lambda: float(_env("DSC_LLM_TIMEOUT", "600")))
    TOOL_TIMEOUT: float = Field(default_factory=lambda: float(_env("DSC_TOOL_TIMEOUT", "600")))

    # Progress / history
    LOG_QUEUE_SIZE: int = Field(default_factory=lambda: int(_env("DSC_LOG_QUEUE_SIZE", "1000")))
    HISTORY_DIR: Path = Field(
        default_factory=lambda: Path(
            _env("DSC_HISTORY_DIR", str(Path.home() / ".dsc-history"))
        ).expanduser()
    )

    @classmethod
    def from_env(cls) -> "Settings":
        """Re-read the environment, e.g. after a .env file has been loaded."""
        return cls()


settings = Settings()


def reload_settings() -> Settings:
    """Refresh the module-level settings in place from the environment."""
    fresh = Settings.from_env()
    for name in Settings.model_fields:
        setattr(settings, name, getattr(fresh, name))
    return settings
