"""
Core configuration management for code-agent-tools
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Toolkit settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_dir: Optional[str] = Field(default=None)  # file sinks are off unless set

    # Managed output directory for generated media
    output_dir: str = Field(default="/tmp/code_agent")

    # Credentials
    hf_token: Optional[str] = Field(default=None)
    moondream_api_key: Optional[str] = Field(default=None)

    # Generation models
    image_model: str = Field(default="black-forest-labs/FLUX.1-dev")
    video_model: str = Field(default="Wan-AI/Wan2.1-T2V-14B")
    inference_provider: str = Field(default="replicate")

    # Peripheral tools
    wikipedia_language: str = Field(default="en")
    wikipedia_max_results: int = Field(default=5, gt=0)
    moondream_base_url: str = Field(default="https://api.moondream.ai")
    http_timeout: int = Field(default=30, gt=0)  # seconds

    # Tool execution
    tool_timeout: int = Field(default=60, gt=0)  # seconds
    interpreter_timeout: int = Field(default=120, gt=0)  # seconds
    generation_timeout: int = Field(default=600, gt=0)  # seconds
    max_output_length: int = Field(default=20000, gt=0)

    @property
    def output_path(self) -> Path:
        """Get the managed output directory as a path."""
        return Path(self.output_dir)

    @property
    def log_path(self) -> Optional[Path]:
        """Get the log directory, if file logging is enabled."""
        return Path(self.log_dir) if self.log_dir else None


# Global settings instance
settings = Settings()
