"""Program configuration"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Program settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="FUND_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Program
    program_id: str = "Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS"
    protocol_funding_tag: str = "protocol_funding"

    # Governance
    governance_decimals: int = 6
    quorum_bps: int = 5000  # share of total deposit that must vote yes

    # Rent schedule used by the local host
    lamports_per_byte_year: int = 3480
    exemption_threshold: float = 2.0
    account_storage_overhead: int = 128

    # Logging
    log_level: str = "INFO"
    log_json: bool = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
