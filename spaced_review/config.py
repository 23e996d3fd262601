from pydantic_settings import BaseSettings
from pathlib import Path

from spaced_review.sm2 import SchedulerParams

# Get the project root directory (parent of the package folder)
PROJECT_ROOT = Path(__file__).parent.parent

class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""
    database_url: str = f"sqlite:///{PROJECT_ROOT / 'spaced_review.db'}"
    log_level: str = "INFO"

    # SM-2 scheduling constants
    initial_ease_factor: float = 2.5
    min_ease_factor: float = 1.3
    first_interval_days: int = 1
    second_interval_days: int = 6

    # Max rows shown by list commands
    due_list_limit: int = 20

    class Config:
        env_file = str(PROJECT_ROOT / ".env")

    def scheduler_params(self) -> SchedulerParams:
        """Build the scheduler context from the configured constants"""
        return SchedulerParams(
            initial_ease_factor=self.initial_ease_factor,
            min_ease_factor=self.min_ease_factor,
            first_interval_days=self.first_interval_days,
            second_interval_days=self.second_interval_days,
        )

settings = Settings()
