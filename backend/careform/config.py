from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Create a .env file in the backend directory to override defaults.
    See .env.example for all available options.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Ollama Configuration
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "qwen2.5:0.5b"
    disable_llm: bool = False  # Fully disables LLM strategies (rule-based only)

    # Per-call timeouts (seconds)
    llm_health_timeout: float = 2.0
    llm_text_timeout: float = 60.0
    llm_vision_timeout: float = 120.0
    llm_summary_timeout: float = 30.0
    llm_list_models_timeout: float = 5.0

    # Substrings identifying models that accept images
    multimodal_model_markers: List[str] = ["llava", "bakllava", "moondream", "cogvlm", "deepseek-vl"]

    # OCR
    tesseract_config: str = "--psm 6"
    ocr_render_dpi: int = 250

    # Templates / uploads
    templates_dir: str = "./templates"
    max_upload_mb: int = 50

    # Logging
    log_level: str = "INFO"

    # CORS (desktop app dev server)
    cors_origins: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173", "tauri://localhost"]

    def get_llm_config(self) -> dict:
        """Get the Ollama configuration used by the extraction strategies."""
        return {
            "provider": "ollama",
            "base_url": self.ollama_base_url,
            "model": self.ollama_model,
            "disabled": self.disable_llm,
            "health_timeout": self.llm_health_timeout,
            "text_timeout": self.llm_text_timeout,
            "vision_timeout": self.llm_vision_timeout,
        }


settings = Settings()
