"""
Configuration for the deep_research_tool package.

Settings are read from the process environment after loading any ``.env``
files found in the working directory and its parents.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Literal, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaValidationError

from deep_research_tool.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_FIRECRAWL_BASE_URL = "https://api.firecrawl.dev"
DEFAULT_OPENAI_MODEL = "chatgpt-4o-latest"

# Environment variable -> Settings field
ENV_VARS = {
    "FIRECRAWL_API_KEY": "firecrawl_api_key",
    "OPENAI_API_KEY": "openai_api_key",
    "FIRECRAWL_BASE_URL": "firecrawl_base_url",
    "MAX_DEPTH": "max_depth",
    "MAX_URLS": "max_urls",
    "TIME_LIMIT": "time_limit",
    "OPENAI_MODEL": "openai_model",
    "ENVIRONMENT": "environment",
    "LOG_LEVEL": "log_level",
    "LOG_DIR": "log_dir",
}


def find_dotenv_files(start_dir: Optional[str] = None, max_levels_up: int = 3) -> List[str]:
    """Return the ``.env`` files from ``start_dir`` up to ``max_levels_up`` parents, outermost first."""
    start = Path(start_dir or os.getcwd()).absolute()
    searched = [start, *start.parents][:max_levels_up + 1]
    return [str(d / ".env") for d in reversed(searched) if (d / ".env").is_file()]


def load_dotenv_files(start_dir: Optional[str] = None, max_levels_up: int = 3) -> List[str]:
    """Load every discovered ``.env`` file so that the one nearest ``start_dir`` wins."""
    loaded = [path for path in find_dotenv_files(start_dir, max_levels_up) if load_dotenv(path, override=True)]
    if loaded:
        logger.debug(f"Loaded environment variables from: {', '.join(loaded)}")
    return loaded


class Settings(BaseModel):
    """Validated runtime settings."""

    firecrawl_api_key: str = Field(..., min_length=1)
    openai_api_key: str = Field(..., min_length=1)
    firecrawl_base_url: str = DEFAULT_FIRECRAWL_BASE_URL

    # Research defaults
    max_depth: int = Field(3, gt=0)
    max_urls: int = Field(20, gt=0)
    time_limit: int = Field(120, gt=0, description="Research time budget in seconds")

    openai_model: str = DEFAULT_OPENAI_MODEL

    environment: Literal["development", "production", "test"] = "development"
    log_level: Optional[str] = None
    log_dir: str = "logs"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Raises:
            ConfigurationError: if a required variable is missing or a value is invalid.
        """
        environ = os.environ if environ is None else environ
        values = {
            field_name: environ[var]
            for var, field_name in ENV_VARS.items()
            if environ.get(var) not in (None, "")
        }
        try:
            return cls(**values)
        except SchemaValidationError as e:
            field_to_var = {v: k for k, v in ENV_VARS.items()}
            problems = ", ".join(
                f"{field_to_var.get(str(err['loc'][0]), err['loc'][0])}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigurationError(f"Invalid environment variables ({problems})") from e


def get_settings(start_dir: Optional[str] = None) -> Settings:
    """Load .env files and return validated settings."""
    load_dotenv_files(start_dir)
    return Settings.from_env()
