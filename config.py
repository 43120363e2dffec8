from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    db_path: str = str(Path(__file__).parent / "flashcards.db")
    log_level: str = "INFO"
    upcoming_limit: int = 5
    review_limit: int | None = None  # None = every due card
    shuffle_review: bool = False

    model_config = {"env_prefix": "MEMOCURVE_"}


settings = Settings()
