from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

from .providers.base import ProviderConfig, ProviderId

DEEPSEEK_MODEL = "deepseek-reasoner"
OPENAI_MODEL = "gpt-5"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    deepseek_api_key: str = Field(default="", alias="DEEPSEEK_API_KEY")
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    deepseek_base_url: str = Field(default="https://api.deepseek.com", alias="DEEPSEEK_BASE_URL")
    openai_base_url: str = Field(default="https://api.openai.com", alias="OPENAI_BASE_URL")

    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    kv_rest_api_url: str | None = Field(default=None, alias="KV_REST_API_URL")

    provider_timeout_sec: float = Field(default=60.0, alias="PROVIDER_TIMEOUT_SEC")
    default_provider: ProviderId = Field(default=ProviderId.DEEPSEEK, alias="DEFAULT_PROVIDER")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


def build_provider_configs(settings: Settings) -> dict[ProviderId, ProviderConfig]:
    return {
        ProviderId.DEEPSEEK: ProviderConfig(
            provider_id=ProviderId.DEEPSEEK,
            model_name=DEEPSEEK_MODEL,
            auth_token=settings.deepseek_api_key.strip(),
            base_url=settings.deepseek_base_url.rstrip("/"),
        ),
        ProviderId.OPENAI: ProviderConfig(
            provider_id=ProviderId.OPENAI,
            model_name=OPENAI_MODEL,
            auth_token=settings.openai_api_key.strip(),
            base_url=settings.openai_base_url.rstrip("/"),
        ),
    }
