"""Application configuration via environment variables."""

from pathlib import Path
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    database_url: str = "sqlite:///./tradedesk.db"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173"]  # Vite dev server

    # Auth
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440  # 24 hours

    # Telegram (operator alerts)
    telegram_bot_token: str = ""
    telegram_chat_ids: list[int] = []

    # Price reference
    hyperliquid_base_url: str = "https://api.hyperliquid.xyz"
    # Asset ids used by clients -> Hyperliquid coin names
    asset_tickers: dict[str, str] = {
        "bitcoin": "BTC",
        "ethereum": "ETH",
        "solana": "SOL",
        "ripple": "XRP",
        "dogecoin": "DOGE",
        "binancecoin": "BNB",
        "cardano": "ADA",
        "bitcoin-cash": "BCH",
        "litecoin": "LTC",
        "chainlink": "LINK",
    }

    # Settlement
    price_retry_backoff_seconds: float = 5.0
    stuck_trade_grace_seconds: int = 30
    stuck_sweep_interval_seconds: int = 60

    model_config = {"env_prefix": "TD_", "env_file": ".env"}


settings = Settings()
