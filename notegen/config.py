"""
Configuration settings for the lesson note generator.
Loads environment variables and provides application-wide settings.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Completion provider: "gemini" (Google Generative Language API) or "ollama"
    LLM_PROVIDER: str = "gemini"
    LLM_TIMEOUT: int = 120  # seconds; long notes for a whole term take a while

    # Gemini Configuration
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"

    # Ollama Configuration
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_LLM_MODEL: str = "qwen2.5:3b"

    # Knowledge Base
    KNOWLEDGE_DIR: str = "./knowledge"
    KNOWLEDGE_FILE_EXTENSION: str = ".docx"
    EXCERPT_MAX_CHARS: int = 8000

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:3001"

    # Upload Configuration
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10 MB
    SUPPORTED_SPREADSHEET_TYPES: List[str] = [".xlsx", ".xls", ".csv"]

    # Export Configuration
    PDF_RENDER_TIMEOUT: int = 30  # seconds
    PDF_MARGIN: str = "0.5in"
    FONT_STYLESHEET_URL: str = (
        "https://fonts.googleapis.com/css2?family=Geist:wght@400;500;600;700"
        "&family=Geist+Mono&display=swap"
    )
    WATERMARK_OPACITY: float = 0.1

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def get_allowed_origins(self) -> List[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]


# Global settings instance
settings = Settings()
