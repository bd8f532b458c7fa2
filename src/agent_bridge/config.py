"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class BotConfig(BaseModel):
    id: str
    platform: str  # "telegram" | "discord"
    token: str
    allowed_chat_ids: list[str] = Field(default_factory=list)  # empty = every chat


class AgentConfig(BaseModel):
    cli_path: str = "claude"
    working_dir: str = "."
    system_prompt: str = ""
    extra_args: list[str] = Field(default_factory=list)
    timeout: float = 120.0  # seconds the poll loop waits for a turn
    poll_interval: float = 0.5
    final_settle_polls: int = 1
    startup_delay: float = 3.0  # seconds between launching the CLI and typing into it
    clarification_tool: str = "AskUserQuestion"
    projects_dir: str = "~/.claude/projects"


class DriverConfig(BaseModel):
    backend: Literal["tmux", "terminal_app"] = "tmux"
    tmux_path: str = "tmux"
    session_prefix: str = "agent-bridge"
    scratch_dir: str = "./data/scratch"
    key_delay: float = 0.1


class QuestionsConfig(BaseModel):
    stale_after: float = 300.0
    sweep_interval: float = 60.0


class SchedulerServiceConfig(BaseModel):
    timezone: str = "UTC"


class StorageConfig(BaseModel):
    sessions_path: str = "./data/sessions.json"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    data_dir: str = "./data"
    pid_file: str = "./data/agent_bridge.pid"
    bots: list[BotConfig]
    agent: AgentConfig = Field(default_factory=AgentConfig)
    driver: DriverConfig = Field(default_factory=DriverConfig)
    questions: QuestionsConfig = Field(default_factory=QuestionsConfig)
    scheduler: SchedulerServiceConfig = Field(default_factory=SchedulerServiceConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # data_dir may be referenced by other keys, resolve it first
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
