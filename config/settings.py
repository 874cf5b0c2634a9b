from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Core
    ENVIRONMENT: str = Field(default="production")
    LOG_LEVEL: str = Field(default="INFO")
    FIRESTORE_PROJECT_ID: str = Field(default="")

    # Operator/admin auth (Google OIDC ID token)
    OPERATOR_AUTH_AUDIENCE: str = Field(default="")
    OPERATOR_INVOKER_SUBS: str = Field(default="")  # comma-separated
    OPERATOR_INVOKER_EMAILS: str = Field(default="")  # comma-separated

    # Wallets allowed to bypass on-chain ownership checks
    ADMIN_LIST: str = Field(default="")  # comma-separated addresses

    # Metadata gateway (tokenURI resolution goes through {base}/ext/{uri})
    METADATA_GATEWAY_URL: str = Field(default="")
    METADATA_FETCH_TIMEOUT_SECONDS: float = Field(default=15.0)

    # Ledger (abstraction chain)
    LEDGER_URL: str = Field(default="")
    LEDGER_BLOCKCHAIN_RID: str = Field(default="")
    LEDGER_API_KEY: str = Field(default="")
    LEDGER_TIMEOUT_SECONDS: float = Field(default=30.0)
    LEDGER_PROBE_DELAY_SECONDS: float = Field(default=0.2)

    # Identity linking (linked wallets)
    IDENTITY_LINK_URL: str = Field(default="")

    # Chain RPC pools: comma-separated URLs, timeout in ms (as in the node configs)
    ETHEREUM_RPC_URLS: str = Field(default="")
    ETHEREUM_RPC_TIMEOUT: int = Field(default=5000)
    ETHEREUM_RPC_RETRIES: int = Field(default=3)
    BSC_RPC_URLS: str = Field(default="")
    BSC_RPC_TIMEOUT: int = Field(default=5000)
    BSC_RPC_RETRIES: int = Field(default=3)
    POLYGON_RPC_URLS: str = Field(default="")
    POLYGON_RPC_TIMEOUT: int = Field(default=5000)
    POLYGON_RPC_RETRIES: int = Field(default=3)
    BASE_RPC_URLS: str = Field(default="")
    BASE_RPC_TIMEOUT: int = Field(default=5000)
    BASE_RPC_RETRIES: int = Field(default=3)
    ARBITRUM_RPC_URLS: str = Field(default="")
    ARBITRUM_RPC_TIMEOUT: int = Field(default=5000)
    ARBITRUM_RPC_RETRIES: int = Field(default=3)

    # External collection reconciliation
    RECONCILE_INTERVAL_SECONDS: int = Field(default=60)
    RECONCILE_CHECK_AGE_SECONDS: int = Field(default=3600)
    RECONCILE_COLLECTION_LIMIT: int = Field(default=10)
    RECONCILE_TOKEN_BATCH_SIZE: int = Field(default=10)

    # Ledger sync of locally edited tokens
    LEDGER_SYNC_INTERVAL_SECONDS: int = Field(default=60)
    LEDGER_SYNC_BATCH_SIZE: int = Field(default=10)
    LEDGER_SYNC_COLLECTION_LIMIT: int = Field(default=500)

    SCHEDULER_ENABLED: bool = Field(default=True)


settings = Settings()


def validate_startup_settings(s: Settings | None = None) -> None:
    """Fail fast at boot when required connection parameters are missing."""
    from config.rpc import configured_networks

    s = s or settings
    missing = []
    if not s.LEDGER_URL:
        missing.append("LEDGER_URL")
    if not s.LEDGER_BLOCKCHAIN_RID:
        missing.append("LEDGER_BLOCKCHAIN_RID")
    if not s.METADATA_GATEWAY_URL:
        missing.append("METADATA_GATEWAY_URL")
    if not configured_networks(s):
        missing.append("<NETWORK>_RPC_URLS")
    if missing:
        raise RuntimeError(f"missing_required_settings: {','.join(missing)}")
