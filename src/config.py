from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "sqlite:///./ledger.db"

    # Auth
    jwt_secret: str = "change-this-secret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 24 * 60
    nonce_ttl_seconds: int = 5 * 60
    nonce_cleanup_minutes: int = 10

    # Document boundary limits
    max_signers: int = 50
    max_file_size: int = 50 * 1024 * 1024
    max_metadata_bytes: int = 10_000
    upload_dir: str = "uploads"

    # Ledger cost ceilings
    create_gas_limit: int = 1_500_000
    sign_gas_limit: int = 300_000
    revoke_gas_limit: int = 100_000
    gas_price_gwei: float = 30.0

    # Off-ledger metadata store: memory | pinata | local
    metadata_store: str = "memory"
    pinata_api_key: Optional[str] = None
    pinata_secret_key: Optional[str] = None
    pinata_base_url: str = "https://api.pinata.cloud"
    ipfs_node_url: str = "http://localhost:5001/api/v0"
    ipfs_gateway_url: str = "https://gateway.pinata.cloud/ipfs"
    metadata_timeout_seconds: float = 10.0

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit: str = "100/15minutes"
    rate_limit_storage_uri: str = "memory://"

    # Event relay
    enable_event_relay: bool = True
    event_poll_seconds: int = 2

    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()


def get_settings() -> Settings:
    return settings
