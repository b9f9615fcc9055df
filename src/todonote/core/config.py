"""
Application Configuration

Centralized settings management using Pydantic BaseSettings.
All values are loaded from ``TODONOTE_``-prefixed environment variables
or a ``.env`` file.
"""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable binding.

    Optional env vars (all prefixed with TODONOTE_):
        DATA_DIR (./data), GLM_API_KEY (unset), GLM_BASE_URL,
        GLM_TIMEOUT (30), GLM_CHAT_MODEL (glm-4), KNOWLEDGE_BASE_ID (unset),
        KNOWLEDGE_TYPE (1), EMBEDDING_ID (3), AUTOSAVE_INTERVAL (30),
        LOG_LEVEL (INFO)
    """

    PROJECT_NAME: str = "TodoNote"

    # Local storage
    DATA_DIR: Path = Path("data")
    NOTES_FILENAME: str = "notes.json"
    ATTACHMENTS_DIRNAME: str = "NoteImages"
    PREFERENCES_FILENAME: str = "preferences.json"

    # Knowledge-base provider
    GLM_API_KEY: str | None = None  # "<id>.<secret>" or a raw bearer token
    GLM_BASE_URL: str = "https://open.bigmodel.cn/api/"
    GLM_TIMEOUT: float = 30.0
    GLM_CHAT_MODEL: str = "glm-4"
    KNOWLEDGE_BASE_ID: str | None = None
    KNOWLEDGE_TYPE: int = 1
    EMBEDDING_ID: int = 3

    # Editing
    AUTOSAVE_INTERVAL: float = 30.0

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="TODONOTE_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",  # Silently ignore unknown env vars
    )

    @property
    def notes_path(self) -> Path:
        """JSON file holding the whole note collection."""
        return self.DATA_DIR / self.NOTES_FILENAME

    @property
    def attachments_dir(self) -> Path:
        """Flat directory for images and rendered PDFs."""
        return self.DATA_DIR / self.ATTACHMENTS_DIRNAME

    @property
    def preferences_path(self) -> Path:
        """Small JSON file with persisted user preferences."""
        return self.DATA_DIR / self.PREFERENCES_FILENAME


settings = Settings()
