"""Service configuration."""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for the star comparison service.

    Resolution order: programmatic, environment vars, .env file, defaults.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str = Field(
        default="mongodb://localhost:27017", description="MongoDB connection URI"
    )
    mongodb_db: str = Field(default="stargazer", description="MongoDB database name")

    jwt_secret: str = Field(description="Secret used to sign access tokens")
    jwt_algorithm: str = "HS256"
    token_expire_minutes: Optional[int] = Field(
        default=None, description="Token lifetime; unset means tokens never expire"
    )
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    github_token: Optional[str] = None
    github_api_url: str = "https://api.github.com"
    github_timeout: float = 10.0
    github_per_page: int = Field(default=100, ge=1, le=100)

    allowed_origins: str = "*"
    port: int = 3000
    log_level: str = "INFO"

    @property
    def origins(self) -> List[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]
