from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./fortyfive.db"
    ENVIRONMENT: str = "local"
    LOG_LEVEL: str = "INFO"

    # Recipe search backend (meal suggestions for a nutrition target)
    SPOONACULAR_API_BASE: str = "https://api.spoonacular.com"
    SPOONACULAR_API_KEY: str | None = None

    HTTP_TIMEOUT_SECONDS: float = 10.0


settings = Settings()
