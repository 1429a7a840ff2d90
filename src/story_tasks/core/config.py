"""Application configuration management using pydantic-settings."""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal

from eth_account import Account
from eth_account.signers.local import LocalAccount
from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from story_tasks.core.exceptions import ConfigurationError

NetworkName = Literal["mainnet", "goerli", "sepolia", "local"]

CHAIN_IDS: dict[str, int] = {
    "mainnet": 1,
    "goerli": 5,
    "sepolia": 11155111,
    "local": 31337,
}

# First account of the "test test ... junk" development mnemonic
LOCAL_DEV_PRIVATE_KEY = (
    "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="story-tasks", description="Application name")

    # Network selection
    network: NetworkName = Field(default="local", description="Target network profile")

    # RPC endpoints
    mainnet_rpc_url: str = Field(default="", description="Mainnet RPC endpoint")
    goerli_rpc_url: str = Field(default="", description="Goerli RPC endpoint")
    sepolia_rpc_url: str = Field(default="", description="Sepolia RPC endpoint")
    local_rpc_url: str = Field(
        default="http://127.0.0.1:8545", description="Local node RPC endpoint"
    )
    rpc_backup_urls: list[str] = Field(
        default=[], description="Backup RPC endpoints for the active network"
    )

    # Signing keys
    mainnet_privatekey: str = Field(default="", description="Mainnet signer key")
    goerli_privatekey: str = Field(default="", description="Goerli signer key")
    sepolia_privatekey: str = Field(default="", description="Sepolia signer key")
    local_privatekey: str = Field(
        default=LOCAL_DEV_PRIVATE_KEY, description="Local node signer key"
    )

    # Deployment manifests
    deployment_dir: Path = Field(
        default=Path("."), description="Directory holding deployment-<chainId>.json"
    )

    # Transactions
    receipt_timeout: float = Field(
        default=120.0, gt=0, description="Seconds to wait for a receipt"
    )
    poll_latency: float = Field(
        default=2.0, gt=0, description="Receipt polling interval in seconds"
    )
    gas_limit_multiplier: float = Field(
        default=1.2, ge=1.0, description="Multiplier applied to estimated gas"
    )
    rpc_max_retries: int = Field(default=3, ge=1, description="Read retries per RPC")

    # Batch uploads
    default_batch_size: int = Field(default=100, gt=0, description="Records per chunk")
    batch_concurrency: int = Field(
        default=1, gt=0, description="Concurrent submissions within a chunk"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log output format"
    )

    @computed_field
    @property
    def chain_id(self) -> int:
        """Get chain ID based on current network selection."""
        return CHAIN_IDS[self.network]

    @computed_field
    @property
    def active_rpc_url(self) -> str:
        """Get RPC URL based on current network selection."""
        return getattr(self, f"{self.network}_rpc_url")

    @computed_field
    @property
    def active_backup_rpc_urls(self) -> list[str]:
        """Get backup RPC URLs for the current network."""
        return list(self.rpc_backup_urls)

    @computed_field
    @property
    def is_mainnet(self) -> bool:
        """Check whether the mainnet profile is selected."""
        return self.network == "mainnet"

    @property
    def active_private_key(self) -> str:
        """Get the signer key for the current network."""
        return getattr(self, f"{self.network}_privatekey")


@dataclass(frozen=True)
class ChainProfile:
    """Resolved chain identity for one invocation."""

    network: str
    chain_id: int
    rpc_urls: tuple[str, ...]
    account: LocalAccount

    @property
    def signer_address(self) -> str:
        return self.account.address


def chain_profile(settings: Settings) -> ChainProfile:
    """Build the immutable chain profile for the selected network.

    Raises:
        ConfigurationError: If the RPC URL or signer key is missing or invalid
    """
    if not settings.active_rpc_url:
        raise ConfigurationError(
            f"No RPC URL configured for network '{settings.network}'. "
            f"Set {settings.network.upper()}_RPC_URL"
        )

    key = settings.active_private_key
    if not key:
        raise ConfigurationError(
            f"No private key configured for network '{settings.network}'. "
            f"Set {settings.network.upper()}_PRIVATEKEY"
        )
    key = key if key.startswith("0x") else f"0x{key}"
    try:
        account: LocalAccount = Account.from_key(key)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid private key for '{settings.network}': {e}") from e

    return ChainProfile(
        network=settings.network,
        chain_id=settings.chain_id,
        rpc_urls=(settings.active_rpc_url, *settings.active_backup_rpc_urls),
        account=account,
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
