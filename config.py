from pathlib import Path
from typing import List
from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    # Blockchain Configuration
    RPC_URL: str = "http://127.0.0.1:8545"
    NETWORK_NAME: str = "Hardhat Localhost"
    CHAIN_ID: int = 31337

    # System Wallet (signs every createHoneyBatch transaction)
    SYSTEM_PRIVATE_KEY: str = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"

    # Smart Contract
    CONTRACT_ADDRESS: str = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
    CONTRACT_ABI_PATH: str = str(BASE_DIR / "contracts" / "HoneyTracker.json")

    # Gas Configuration
    GAS_LIMIT: int = 500000
    GAS_ESTIMATION_BUFFER: float = 1.2
    TX_RECEIPT_TIMEOUT: int = 120

    # Blockchain Explorer Configuration (empty disables explorer links)
    EXPLORER_TX_URL: str = ""

    # Record Store (PostgreSQL)
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "honey_verification"
    DB_USER: str = "postgres"
    DB_PASS: str = "postgres"
    DB_POOL_MIN: int = 1
    DB_POOL_MAX: int = 5

    # API Configuration
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Consumer-facing site that serves /verify?id=<batch>
    PUBLIC_BASE_URL: str = "http://localhost:3000"
    QR_CACHE_DIR: str = str(BASE_DIR / "data" / "qr")

    # Security
    DEMO_PASSWORD: str = "honey123"
    SESSION_TTL_MINUTES: int = 480

    # Ledger -> store mirroring
    SYNC_INTERVAL_SECONDS: int = 30

    class Config:
        env_file = ".env"
        case_sensitive = True

# Global settings instance
settings = Settings()
