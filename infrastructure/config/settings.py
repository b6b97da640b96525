"""
Shieldbridge Application Settings
Centralized configuration management using Pydantic
"""
import os
from typing import Optional
from urllib.parse import urlparse, urlunparse

import base58
from dotenv import load_dotenv
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables BEFORE the settings classes are instantiated
# Deployed environments inject variables directly; .env files are for local runs
if not os.getenv("SHIELDBRIDGE_NO_DOTENV"):
    load_dotenv(".env.local")  # Development env first
    load_dotenv(".env", override=False)  # Fallback env (no override)


class DatabaseSettings(BaseSettings):
    """Database configuration"""

    model_config = SettingsConfigDict(env_prefix="DATABASE_", extra="ignore")

    url: str = "sqlite+aiosqlite:///./shieldbridge.db"
    test_url: Optional[str] = None
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800

    @property
    def effective_url(self) -> str:
        """Return test_url if available, otherwise url, normalized for the async engine"""
        base_url = (self.test_url or self.url).strip().replace("\n", "").replace("\r", "")
        if not base_url or base_url.startswith("sqlite"):
            return base_url

        parsed = urlparse(base_url)

        # Normalize scheme: handle both postgres:// and postgresql://
        scheme = parsed.scheme
        if scheme == "postgres":
            scheme = "postgresql"

        # Add psycopg driver if not already present
        # SQLAlchemy will automatically use async version when using create_async_engine
        if scheme == "postgresql+asyncpg":
            scheme = "postgresql+psycopg"
        elif not scheme.startswith("postgresql+"):
            scheme = "postgresql+psycopg"

        return urlunparse(parsed._replace(scheme=scheme))


class SolanaSettings(BaseSettings):
    """Source chain (Solana) RPC configuration"""

    model_config = SettingsConfigDict(env_prefix="SOLANA_", extra="ignore")

    rpc_url: str = "https://api.mainnet-beta.solana.com"
    commitment: str = "finalized"  # processed < confirmed < finalized
    signature_page_size: int = 25
    request_timeout: float = 10.0
    max_retries: int = Field(3, ge=1)

    @field_validator("commitment")
    @classmethod
    def validate_commitment(cls, v: str) -> str:
        if v not in ("processed", "confirmed", "finalized"):
            raise ValueError("Commitment must be one of processed, confirmed, finalized")
        return v


class SettlementSettings(BaseSettings):
    """Settlement network (NEAR Intents 1Click) configuration"""

    model_config = SettingsConfigDict(env_prefix="SETTLEMENT_", extra="ignore")

    api_url: str = "https://1click.chaindefuser.com"
    jwt: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("SETTLEMENT_JWT", "NEAR_INTENTS_JWT"),
    )
    origin_asset: str = "nep141:sol.omft.near"
    destination_asset: str = "nep141:zec.omft.near"
    slippage_tolerance_bps: int = 100  # 1%
    quote_deadline_hours: int = 24
    default_time_estimate_seconds: int = 180
    request_timeout: float = 30.0
    max_retries: int = Field(3, ge=1)
    retry_delay_seconds: float = 3.0

    # Refund address used for quotes when the caller supplies none.
    # Without it GetQuote requires an explicit refund address.
    default_refund_address: Optional[str] = None

    @field_validator("default_refund_address")
    @classmethod
    def validate_default_refund_address(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip()
        try:
            raw = base58.b58decode(v)
        except ValueError as e:
            raise ValueError(f"Default refund address is not base58: {e}") from e
        if len(raw) != 32:
            raise ValueError("Default refund address must be a 32-byte Solana public key")
        return v


class ZcashSettings(BaseSettings):
    """Destination chain (Zcash) configuration"""

    model_config = SettingsConfigDict(env_prefix="ZCASH_", extra="ignore")

    network: str = "mainnet"

    @field_validator("network")
    @classmethod
    def validate_network(cls, v: str) -> str:
        v = v.lower()
        if v not in ("mainnet", "testnet"):
            raise ValueError("Zcash network must be mainnet or testnet")
        return v


class OrchestratorSettings(BaseSettings):
    """Deposit detection and settlement reconciliation configuration"""

    model_config = SettingsConfigDict(env_prefix="ORCHESTRATOR_", extra="ignore")

    enabled: bool = True
    run_in_api: bool = False  # Start orchestration inside the HTTP process
    scan_interval_seconds: float = 15.0

    deposit_poll_interval_seconds: float = 10.0
    deposit_slow_poll_interval_seconds: float = 60.0
    deposit_detection_window_minutes: int = 30
    quote_expiry_grace_minutes: int = 10

    reconcile_interval_seconds: float = 5.0
    reconcile_max_attempts: int = 60  # 60 x 5s = 5 minutes


class LoggingSettings(BaseSettings):
    """Logging configuration"""

    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dedup_window_seconds: int = 60
    dedup_max_repeats: int = 3
    alert_file: Optional[str] = None  # CRITICAL operator alerts are also appended here


class AppSettings(BaseSettings):
    """Main application settings"""

    model_config = SettingsConfigDict(
        env_file=".env.local",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    debug: bool = False
    testing: bool = False
    environment: str = "development"

    # Application
    name: str = "Shieldbridge"
    version: str = "0.1.0"
    api_prefix: str = "/api/v1"

    # Sub-settings
    database: DatabaseSettings = DatabaseSettings()
    solana: SolanaSettings = SolanaSettings()
    settlement: SettlementSettings = SettlementSettings()
    zcash: ZcashSettings = ZcashSettings()
    orchestrator: OrchestratorSettings = OrchestratorSettings()
    logging: LoggingSettings = LoggingSettings()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.environment.lower() in ["development", "dev", "local"]

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode"""
        return self.testing or self.environment.lower() == "testing"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode"""
        return self.environment.lower() == "production"


# Global settings instance
settings = AppSettings()
