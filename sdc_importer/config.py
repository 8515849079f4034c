from typing import Optional

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application configuration with environment variable support"""

    # App
    app_name: str = "SDC Form Importer"
    debug: bool = False
    log_level: str = "INFO"

    # FHIR
    # Context FHIR server used to expand value sets when no terminology
    # server is declared on the item or its ancestors
    fhir_server_url: Optional[str] = None

    # Terminology resolution
    terminology_timeout: float = 10.0
    terminology_retry_attempts: int = 3  # transport errors only, HTTP errors are final

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "SDC_"

settings = Settings()
