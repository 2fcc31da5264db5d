from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    PROJECT_NAME: str = "Organization Directory API"
    DATABASE_URL: str = Field(..., description="Async SQLAlchemy connection string")
    API_KEY: str = Field(..., description="Static API Key for security")

    # дебаг режим (эхо sql)
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # дерево деятельностей: корень -> ребенок -> внук
    ACTIVITY_MAX_DEPTH: int = Field(3, ge=1)
    DEFAULT_RADIUS_KM: float = Field(5.0, ge=0)

    # наливать демо данные в пустую базу при старте
    SEED_DEMO_DATA: bool = True

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
