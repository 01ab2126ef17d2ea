from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

# Load .env from repo root for local development and scripts.
ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=ENV_PATH)

class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True, populate_by_name=True)
    api_base_url: str = Field(default="http://localhost:8080/api/v1", alias="VISOR_API_BASE_URL")
    state_path: str = Field(default="./data/visor_state.sqlite3", alias="VISOR_STATE_PATH")
    token_key: str = Field(default="visor_jwt", alias="VISOR_TOKEN_KEY")
    active_portfolio_key: str = Field(default="visor_active_portfolio", alias="VISOR_ACTIVE_PORTFOLIO_KEY")
    http_timeout_seconds: float | None = Field(default=None, alias="HTTP_TIMEOUT_SECONDS")
    default_period: str = Field(default="30d", alias="VISOR_DEFAULT_PERIOD")
    default_exchange: str = Field(default="bybit", alias="VISOR_DEFAULT_EXCHANGE")

settings = Settings()
