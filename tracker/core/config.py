from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    date_default_dayfirst: bool = False
    log_level: str = "INFO"
    allowed_origins: str = "http://localhost:5173,http://localhost:3000"

    # Pipeline batching
    batch_size: int = 500  # Rows handled between progress events / cancellation checks

    # Template detection
    template_partial_threshold: float = 0.5   # Minimum matched/total ratio to select a template
    template_high_threshold: float = 0.8      # Ratio treated as a high-confidence template match
    sample_rows_default: int = 10

    # Field detection
    field_min_confidence: float = 0.3         # Alias matches at or below this are discarded
    low_confidence_threshold: float = 0.6     # Fields below this get a review suggestion

    # Auto-proceed policy for mapping review
    auto_proceed_company_confidence: float = 0.6
    auto_proceed_high_confidence: float = 0.8
    auto_proceed_min_high_fraction: float = 0.6

    # Identifier generation
    id_max_attempts: int = 5

    model_config = ConfigDict(env_file=".env", extra="ignore")


settings = Settings()
