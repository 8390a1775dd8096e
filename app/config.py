from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Field names double as env var names: OPENAI_API_KEY, MODEL, MODEL_IMPROVE, ...
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", protected_namespaces=()
    )

    openai_api_key: str = ""
    # Initial generation
    model: str = "gpt-4o-mini"
    # Refinement runs on the stronger model
    model_improve: str = "gpt-4o"
    request_timeout: float = 120.0

    max_chars: int = 120_000
    chunk_size: int = 6_000
    chunk_overlap: int = 500
    max_user_stories: int = 25

    default_analyst_name: str = "Analista QA Manual"
    default_project_name: str = "No especificado"

    # Where workbook exports are written before being streamed back
    output_dir: str = "generated"
