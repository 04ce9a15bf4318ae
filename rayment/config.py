"""
Client settings from the environment.

Settings is a pydantic-settings model: RAYMENT_* environment variables win over
the .env file, which wins over the defaults. Bad numeric values fall back to
the default with a warning rather than failing at startup.
"""

import logging
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import Field, ValidationInfo, ValidatorFunctionWrapHandler, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_HUB_URL = "https://hub.rayment.io"
DEFAULT_RPC_URL = "https://ethereum-sepolia-rpc.publicnode.com"
SEPOLIA_CHAIN_ID = 11155111

ENV_PREFIX = "RAYMENT_"
ENV_PRIVATE_KEY = "RAYMENT_CLIENT_PRIVATE_KEY"


class Settings(BaseSettings):
    """Client settings; every field can be set as RAYMENT_<FIELD> in the environment or .env."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )

    hub_url: str = DEFAULT_HUB_URL
    rpc_url: str = DEFAULT_RPC_URL
    chain_id: int = Field(SEPOLIA_CHAIN_ID, gt=0)
    request_timeout: float = Field(300.0, gt=0, description="Seconds per HTTP request")
    poll_interval: float = Field(2.0, ge=0, description="Seconds between status polls")
    job_timeout: float = Field(600.0, gt=0, description="Per-job deadline, from submission")
    poll_retries: int = Field(3, ge=0, description="Retries for a failing status poll")
    poll_backoff: float = Field(1.0, ge=0, description="First retry delay; doubles each retry")
    estimated_render_seconds: float = Field(60.0, ge=0)
    concurrency: int = Field(2, gt=0)

    @field_validator("hub_url", "rpc_url")
    @classmethod
    def _strip_url(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @field_validator(
        "chain_id",
        "request_timeout",
        "poll_interval",
        "job_timeout",
        "poll_retries",
        "poll_backoff",
        "estimated_render_seconds",
        "concurrency",
        mode="wrap",
    )
    @classmethod
    def _default_on_bad_value(cls, value: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo) -> Any:
        try:
            return handler(value)
        except PydanticValidationError:
            default = cls.model_fields[info.field_name].default
            logger.warning(
                "Ignoring %s%s=%r (invalid); using %s", ENV_PREFIX, info.field_name.upper(), value, default
            )
            return default


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """
    Build Settings from RAYMENT_* environment variables and the .env file.

    The .env file is also loaded into os.environ (existing variables win) so
    RAYMENT_CLIENT_PRIVATE_KEY is visible to AgentWallet.from_env.
    """
    env_file = env_file or Path.cwd() / ".env"
    load_dotenv(env_file, override=False)
    return Settings(_env_file=env_file)
