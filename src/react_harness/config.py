# config.py
# Runtime settings. Values come from the environment (and a local .env
# file, if present); explicit constructor arguments always win.

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "anthropic/claude-3.5-haiku"
DEFAULT_MAX_STEPS = 10
DEFAULT_STREAM_TIMEOUT = 30.0


class AgentSettings(BaseModel):
    """Connection and budget settings shared by the backends and agents."""

    api_key: str | None = Field(default=None, description="OpenRouter / OpenAI API key.")
    base_url: str = Field(default=DEFAULT_BASE_URL)
    model: str = Field(default=DEFAULT_MODEL)
    max_steps: int = Field(default=DEFAULT_MAX_STEPS, gt=0)
    stream_timeout: float = Field(
        default=DEFAULT_STREAM_TIMEOUT,
        gt=0,
        description="Seconds a streaming run may take before it is closed.",
    )

    @classmethod
    def from_env(cls) -> "AgentSettings":
        """Create settings from environment variables."""
        return cls(
            api_key=os.getenv("OPENROUTER_API_KEY") or os.getenv("OPENAI_API_KEY"),
            base_url=os.getenv("REACT_HARNESS_BASE_URL", DEFAULT_BASE_URL),
            model=os.getenv("REACT_HARNESS_MODEL", DEFAULT_MODEL),
            max_steps=int(os.getenv("REACT_HARNESS_MAX_STEPS", DEFAULT_MAX_STEPS)),
            stream_timeout=float(os.getenv("REACT_HARNESS_STREAM_TIMEOUT", DEFAULT_STREAM_TIMEOUT)),
        )
