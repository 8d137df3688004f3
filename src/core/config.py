import os
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    network_name: str = os.getenv("NETWORK_NAME", "base-mainnet")
    chain_id: int = os.getenv("CHAIN_ID", 8453)
    bridge_address: str = os.getenv("BRIDGE_ADDRESS", "0x3154Cf16ccdb4C6d922629664174b904d80F2C35")
    rpc_url: str = os.getenv("RPC_URL", "https://mainnet.base.org")

    gas_price: int = os.getenv("GAS_PRICE", 1_000_000_000)
    gas_buffer_percent: int = 120
    min_deployer_balance: int = 10**16  # 0.01 ether
    deployer_address: str | None = os.getenv("DEPLOYER_ADDRESS")
    genesis_balances: dict[str, int] = {}
    deployments_dir: str = os.getenv("DEPLOYMENTS_DIR", "deployments")
    persist_deployment: bool = True

    JWT_SECRET_KEY: str | None = os.getenv("JWT_SECRET_KEY")
    JWT_ALGORITHM: str = 'HS256'
    TOKEN_EXPIRE_MINUTES: int = 30
    MAX_USED_TOKENS: int = 1000

setting = Settings()
