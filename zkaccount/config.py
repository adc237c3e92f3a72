"""Application configuration."""
from decimal import Decimal
from functools import lru_cache
from typing import Dict, List

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Configuration service (chain profiles)
    config_service_url: str = "http://localhost:5000"
    config_endpoint_path: str = "/api/config"

    # Proof issuing service
    proof_service_url: str = "http://localhost:5000"
    proof_endpoint_path: str = "/api/zkp/generate"
    proof_timeout_seconds: float = 30.0

    # RPC
    rpc_request_timeout_seconds: float = 15.0

    # Caller sessions holding a cached chain context
    max_chain_sessions: int = 1024

    # Balance reads
    balance_read_timeout_seconds: float = 10.0
    balance_read_attempts: int = 3
    balance_retry_delay_seconds: float = 1.0

    # Gas
    estimate_attempts: int = 2
    estimate_retry_delay_seconds: float = 0.5
    gas_multiplier: int = 2
    fallback_gas_limit: int = 500_000
    create_gas_ceiling: int = 500_000
    create_gas_ceilings: str = "11155111:1000000"
    min_gas_reserve_eth: str = "0.001"
    simulate_before_fallback: bool = False

    # Confirmation tracking
    confirmation_timeout_seconds: float = 30.0
    confirmation_poll_interval_seconds: float = 1.0

    # Environment
    environment: str = "development"
    log_level: str = "INFO"
    cors_origins: str = ""

    @model_validator(mode='after')
    def strip_service_urls(self):
        """Normalize service base URLs."""
        # Trailing slashes would double up with endpoint paths
        self.config_service_url = self.config_service_url.strip().rstrip("/")
        self.proof_service_url = self.proof_service_url.strip().rstrip("/")
        if self.balance_read_attempts < 1 or self.estimate_attempts < 1:
            raise ValueError("Retry attempt counts must be at least 1")
        return self

    @property
    def chain_gas_ceilings(self) -> Dict[int, int]:
        """Parse per-chain account creation gas ceilings."""
        ceilings: Dict[int, int] = {}
        for item in self.create_gas_ceilings.split(","):
            if not item.strip():
                continue
            chain_id, _, gas = item.partition(":")
            ceilings[int(chain_id.strip())] = int(gas.strip())
        return ceilings

    @property
    def min_gas_reserve_wei(self) -> int:
        """Minimum owner balance required to pay for gas, in wei."""
        return int(Decimal(self.min_gas_reserve_eth) * Decimal(10**18))

    @property
    def allowed_origins(self) -> List[str]:
        """Parse CORS origins."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def creation_gas_ceiling(self, chain_id: int) -> int:
        """Fixed gas ceiling for account creation on the given chain."""
        return self.chain_gas_ceilings.get(chain_id, self.create_gas_ceiling)

    class Config:
        env_file = ".env"
        extra = "ignore"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    import logging
    logger = logging.getLogger(__name__)

    settings = Settings()

    logger.info(
        f"Settings loaded - CONFIG_SERVICE: {settings.config_service_url}, "
        f"PROOF_SERVICE: {settings.proof_service_url}, ENVIRONMENT: {settings.environment}"
    )

    return settings
