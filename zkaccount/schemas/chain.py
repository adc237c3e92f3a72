"""Chain profile schema."""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ChainProfile(BaseModel):
    """Network metadata for one chain. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    chain_id: int = Field(..., gt=0)
    network_name: str = ""
    rpc_url: str
    explorer_url: str = ""
    directory_contract: Optional[str] = None
    factory_contract: str
    verifier_contract: Optional[str] = None
    is_active: bool = True

    def tx_url(self, tx_hash: str) -> Optional[str]:
        """Explorer link for a transaction."""
        if not self.explorer_url:
            return None
        return f"{self.explorer_url.rstrip('/')}/tx/{tx_hash}"

    def address_url(self, address: str) -> Optional[str]:
        """Explorer link for an address."""
        if not self.explorer_url:
            return None
        return f"{self.explorer_url.rstrip('/')}/address/{address}"


class ChainConfigResponse(BaseModel):
    """Configuration service payload for one chain."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    success: bool
    rpc_url: Optional[str] = Field(default=None, alias="rpcUrl")
    network_name: Optional[str] = Field(default=None, alias="networkName")
    chain_id: Optional[int] = Field(default=None, alias="chainId")
    explorer_url: Optional[str] = Field(default=None, alias="explorerUrl")
    verifier_contract: Optional[str] = Field(default=None, alias="zkVerifierV3Address")
    factory_contract: Optional[str] = Field(default=None, alias="zkAccountFactoryV3Address")
    directory_contract: Optional[str] = Field(default=None, alias="oauthNamingService")
    is_active: bool = Field(default=True, alias="isActive")
    error: Optional[str] = None

    def to_profile(self, chain_id: int) -> ChainProfile:
        """Build a profile, or raise ValueError when required fields are missing."""
        if not self.rpc_url or not self.factory_contract:
            raise ValueError("Configuration lacks RPC URL or factory address")
        if self.chain_id is not None and self.chain_id != chain_id:
            raise ValueError(f"Configuration is for chain {self.chain_id}")
        if not self.is_active:
            raise ValueError("Chain is disabled")
        return ChainProfile(
            chain_id=chain_id,
            network_name=self.network_name or "",
            rpc_url=self.rpc_url,
            explorer_url=self.explorer_url or "",
            directory_contract=self.directory_contract or None,
            factory_contract=self.factory_contract,
            verifier_contract=self.verifier_contract or None,
            is_active=self.is_active,
        )
