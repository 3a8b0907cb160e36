"""Memory layer settings and configuration schema."""

import json
import os
from pathlib import Path
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from rag_memory.errors import ConfigError


SUMMARIZATION_KEY_ENV = "SUMMARIZATION_API_KEY"
EMBEDDING_KEY_ENV = "VOYAGE_API_KEY"


class MemorySettings(BaseModel):
    """
    All user-facing settings of the memory layer.

    Read through a provider callable at every pipeline invocation, so edits
    take effect on the next turn without rebuilding anything.
    """

    enabled: bool = False

    # Summarization API (OpenAI-compatible chat completions)
    summarization_url: str = ""
    summarization_key: str = ""
    summarization_model: str = "gemini-2.0-flash-exp"

    # Embedding API
    embedding_api_key: str = ""
    embedding_model: str = "voyage-4-large"
    embedding_url: str = "https://api.voyageai.com/v1/embeddings"

    # Behavior
    auto_store: bool = True
    auto_retrieve: bool = True
    top_k: int = Field(5, ge=1)
    similarity_threshold: float = Field(0.7, ge=0.0, le=1.0)
    injection_position: str = "afterScenario"
    injection_depth: int = Field(0, ge=0)

    # Which turns get summarized
    summarize_bot: bool = True
    summarize_user: bool = True

    # Advanced
    language: Literal["en", "ko"] = "ko"
    custom_prompt: str = ""
    memory_template: str = "[과거 대화에서 관련된 기억들:\n{{memories}}]"
    word_limit: int = Field(50, ge=1)

    # Prior summaries as context
    include_history: bool = True
    history_count: int = Field(3, ge=0)

    # Prior raw turns as context
    include_raw_history: bool = True
    raw_history_count: int = Field(5, ge=0)
    raw_include_bot: bool = True
    raw_include_user: bool = True

    debug_mode: bool = False

    # Runtime
    storage_dir: str = "data/memories"
    request_timeout: float = Field(30.0, gt=0)

    def system_prompt(self) -> str:
        """Summarization prompt: custom prompt, else the language default."""
        from rag_memory.memory.composer import resolve_system_prompt

        return resolve_system_prompt(self)


def load_settings(path: Optional[Union[str, Path]] = None) -> MemorySettings:
    """
    Load settings from an optional JSON file, falling back to defaults.

    Empty API keys are filled from the ``SUMMARIZATION_API_KEY`` and
    ``VOYAGE_API_KEY`` environment variables.

    Args:
        path: JSON settings file; ignored when None or missing

    Returns:
        MemorySettings instance

    Raises:
        ConfigError: If the file is not valid JSON or fails validation
    """
    data = {}
    if path is not None and Path(path).exists():
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Settings file {path} is not valid JSON: {e}") from e

    try:
        settings = MemorySettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e

    if not settings.summarization_key:
        settings.summarization_key = os.getenv(SUMMARIZATION_KEY_ENV, "")
    if not settings.embedding_api_key:
        settings.embedding_api_key = os.getenv(EMBEDDING_KEY_ENV, "")

    return settings
