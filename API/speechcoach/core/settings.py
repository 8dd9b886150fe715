from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "dev"
    app_host: str = "0.0.0.0"
    app_port: int = 3001
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000"

    llm_provider: str = "gemini"
    # Conversational model for the check-in; the fast model handles plan generation and grading.
    llm_model: str = "gemini-2.5-flash"
    llm_fast_model: str = "gemini-2.5-flash-lite"
    llm_timeout_seconds: float = 30.0
    gemini_api_key: str = ""
    gemini_api_url: str = ""
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "qwen2.5:3b"

    practice_question_count: int = 10

    unsplash_access_key: str = ""
    unsplash_api_url: str = "https://api.unsplash.com/search/photos"
    bing_image_api_key: str = ""
    bing_image_api_url: str = "https://api.bing.microsoft.com/v7.0/images/search"
    image_search_timeout_seconds: float = 10.0

    runtime_data_dir: str = "data/system"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
