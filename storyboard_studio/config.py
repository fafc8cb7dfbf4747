import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Runtime settings for generation calls and batch pacing."""
    openrouter_api_key: Optional[str] = Field(None, description="OpenRouter API key; required only for network calls.")
    text_model: str = "google/gemini-2.5-flash"
    image_model: str = "google/gemini-2.5-flash-image-preview"
    reasoning_effort: str = "minimal"
    image_generation_retries: int = 2
    run_all_delay: float = Field(1.0, ge=0, description="Seconds to wait between generations in a run-all batch.")
    save_checkpoints: bool = False
    checkpoint_dir: str = "data"
    llm_logging: bool = True

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        """Build settings from the environment after loading a .env file."""
        load_dotenv(dotenv_path)
        return cls(
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY"),
            text_model=os.getenv("STORYBOARD_TEXT_MODEL", cls.model_fields["text_model"].default),
            image_model=os.getenv("STORYBOARD_IMAGE_MODEL", cls.model_fields["image_model"].default),
            run_all_delay=float(os.getenv("STORYBOARD_RUN_ALL_DELAY", "1.0")),
            save_checkpoints=_env_flag("STORYBOARD_SAVE_CHECKPOINTS"),
            checkpoint_dir=os.getenv("STORYBOARD_DATA_DIR", "data"),
            llm_logging=_env_flag("STORYBOARD_LLM_LOG", True),
        )
