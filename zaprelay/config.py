from typing import Optional
from urllib.parse import quote

from pydantic import field_validator
from pydantic_settings import BaseSettings

DEFAULT_SYSTEM_PROMPT = "Você é um assistente do WhatsApp. Responda de forma breve e amigável."


class Settings(BaseSettings):
    evolution_api_url: str = ""
    evolution_api_key: str = ""
    evolution_instance: str = ""

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    openai_voice: str = "alloy"

    redis_url: Optional[str] = None
    redis_addr: str = "localhost:6379"
    redis_password: str = ""
    redis_db: int = 0
    redis_socket_timeout_seconds: float = 2.0

    history_max_turns: int = 20
    history_ttl_seconds: int = 24 * 60 * 60
    gateway_timeout_seconds: float = 10.0
    reply_with_audio: bool = True
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @field_validator("evolution_api_url", "openai_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return (value or "").strip().rstrip("/")

    @field_validator("openai_voice")
    @classmethod
    def _default_voice(cls, value: str) -> str:
        return (value or "").strip() or "alloy"

    def missing_required(self) -> list[str]:
        required = {
            "EVOLUTION_API_URL": self.evolution_api_url,
            "EVOLUTION_API_KEY": self.evolution_api_key,
            "EVOLUTION_INSTANCE": self.evolution_instance,
            "OPENAI_API_KEY": self.openai_api_key,
        }
        return [name for name, value in required.items() if not value]

    def resolved_redis_url(self) -> str:
        """REDIS_URL wins; otherwise build one from REDIS_ADDR, REDIS_PASSWORD and REDIS_DB."""
        if self.redis_url:
            return self.redis_url
        auth = f":{quote(self.redis_password, safe='')}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_addr}/{self.redis_db}"


settings = Settings()
