"""Application configuration and settings."""

from functools import lru_cache
from typing import List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Service Configuration
    service_name: str = Field(default="sms-wallet")
    service_version: str = Field(default="1.0.0")
    port: int = Field(default=8000)
    host: str = Field(default="::")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    environment: str = Field(default="development")

    # Database
    database_url: str = Field(default="sqlite:///./smswallet.db")
    database_echo: bool = Field(default=False)

    # Wallet API (custodial wallets and token transfers)
    wallet_api_url: str = Field(default="http://localhost:8101")
    wallet_api_key: str = Field(default="")
    wallet_api_timeout: int = Field(default=30)
    wallet_blockchain: str = Field(default="MATIC-AMOY")

    # Name registration API
    registration_api_url: str = Field(default="http://localhost:8102")
    registration_api_key: str = Field(default="")
    registration_api_timeout: int = Field(default=60)
    registration_domain: str = Field(default="smswallet.eth")

    # Outbound SMS gateway
    sms_gateway_url: str = Field(default="http://localhost:8103/messages")
    sms_gateway_api_key: str = Field(default="")
    sms_gateway_timeout: int = Field(default=30)
    sms_default_sender: str = Field(default="")

    # Circuit Breaker / Retry Configuration
    circuit_breaker_failure_threshold: int = Field(default=5)
    circuit_breaker_timeout_seconds: int = Field(default=60)
    retry_max_attempts: int = Field(default=3)
    retry_base_delay_seconds: float = Field(default=1.0)
    retry_max_delay_seconds: float = Field(default=10.0)

    # Command protocol
    inbound_event_type: str = Field(default="message.phone.received")
    code_length: int = Field(default=6)
    code_alphabet: str = Field(default="ABCDEFGHJKLMNPQRSTUVWXYZ23456789")
    max_code_generation_attempts: int = Field(default=10)
    code_ttl_minutes: Optional[int] = Field(default=None)
    reply_to_unknown_commands: bool = Field(default=True)

    # CORS
    enable_cors: bool = Field(default=False)
    cors_origins: List[str] = Field(default=["http://localhost:3000"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    @field_validator("code_length")
    @classmethod
    def validate_code_length(cls, v: int) -> int:
        if not 4 <= v <= 12:
            raise ValueError("Code length must be between 4 and 12 characters")
        return v

    @field_validator("code_alphabet")
    @classmethod
    def validate_code_alphabet(cls, v: str) -> str:
        if len(set(v)) < 16:
            raise ValueError("Code alphabet must contain at least 16 distinct characters")
        if not v.isalnum() or v != v.upper():
            raise ValueError("Code alphabet must be upper-case alphanumeric")
        return v

    @field_validator("code_ttl_minutes")
    @classmethod
    def validate_code_ttl(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("Code TTL must be a positive number of minutes")
        return v

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache()
def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
