"""Configuration management for the channel automation system"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, model_validator

from ..automation.automation_models import DEFAULT_TIMEZONE


class AutomationConfig(BaseModel):
    default_timezone: str = DEFAULT_TIMEZONE
    poll_interval_minutes: int = Field(default=5, ge=1)
    # Single due-ness window used by every evaluation; must exceed the poll interval
    due_window_minutes: int = Field(default=6, ge=1)
    ideas_per_batch: int = Field(default=5, ge=1)
    default_max_active_tasks: int = Field(default=2, ge=1)
    max_concurrent_channels: int = Field(default=4, ge=1)
    release_lock_on_success: bool = True
    stale_lock_minutes: int = Field(default=0, ge=0)  # 0 disables reclaim

    @model_validator(mode="after")
    def _check_window(self) -> "AutomationConfig":
        if self.due_window_minutes <= self.poll_interval_minutes:
            raise ValueError(
                f"due_window_minutes ({self.due_window_minutes}) must be greater than "
                f"poll_interval_minutes ({self.poll_interval_minutes})"
            )
        return self


class LLMConfig(BaseModel):
    use_local_llm: bool = False
    local_llm_url: str = "http://localhost:11434/v1"
    api_key_env: str = "OPENAI_API_KEY"
    model_name: str = "gpt-4o-mini"
    temperature: float = 0.8
    max_tokens: int = 1500


class TelegramConfig(BaseModel):
    enabled: bool = False
    bot_token_env: str = "TELEGRAM_BOT_TOKEN"
    chat_id: Optional[str] = None
    api_base: str = "https://api.telegram.org"
    timeout_seconds: int = 15

    def get_bot_token(self) -> Optional[str]:
        return os.getenv(self.bot_token_env)

    def get_chat_id(self) -> Optional[str]:
        return self.chat_id or os.getenv("AUTOMATION_DEBUG_CHAT_ID")


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 4000


class PathsConfig(BaseModel):
    """Storage paths configuration"""
    data: str = "./data"
    logs: str = "./logs"


class Config(BaseModel):
    automation: AutomationConfig = AutomationConfig()
    llm: LLMConfig = LLMConfig()
    telegram: TelegramConfig = TelegramConfig()
    server: ServerConfig = ServerConfig()
    paths: PathsConfig = PathsConfig()
    logging: Dict[str, Any] = {}

    @classmethod
    def load(cls, config_path: str) -> "Config":
        """Load configuration from YAML file"""
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    def save(self, config_path: str):
        """Save configuration to YAML file"""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.model_dump(), f, default_flow_style=False)
