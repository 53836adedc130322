"""
Configuration loaded from environment variables. Fail-fast on invalid values.
"""

from decimal import Decimal

from pydantic_settings import BaseSettings
from pydantic import Field, model_validator

from executor.sizing import SizingMode, SizingPolicy
from scanner.cross_market import DetectorConfig


class Config(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "frozen": True, "extra": "ignore"}

    # Credentials (required for live trading, optional for read-only)
    private_key: str = Field(default="", description="EOA private key (hex) used to sign orders")
    proxy_wallet: str = Field(default="", description="Maker wallet (proxy or Safe) holding USDC")
    poly_api_key: str = ""
    poly_api_secret: str = ""
    poly_api_passphrase: str = ""

    # API endpoints
    clob_host: str = "https://clob.polymarket.com"
    gamma_host: str = "https://gamma-api.polymarket.com"
    ws_market_url: str = "wss://ws-subscriptions-clob.polymarket.com/ws/market"
    polygon_rpc_url: str = "https://polygon-rpc.com"
    chain_id: int = 137  # Polygon mainnet

    # Detector thresholds (prices are per outcome share, $0-$1)
    min_profit_threshold: float = Field(default=0.005, ge=0, lt=1.0)
    arbitrage_max_sum: float = Field(default=0.99, gt=0, le=1.0)
    min_reasonable_price: float = Field(default=0.15, ge=0, le=1.0)
    max_reasonable_price: float = Field(default=0.95, ge=0, le=1.0)
    min_total_cost: float = Field(default=0.50, ge=0, le=2.0)

    # Position sizing
    trade_mode: SizingMode = SizingMode.PERCENTAGE
    fixed_usdc_per_trade: float = Field(default=5.0, gt=0)
    # Percent of balance, 10 = 10%
    percentage_per_trade: float = Field(default=10.0, gt=0, le=100.0)
    # Cap for FREE mode ($). 0 = no cap
    max_trade_usd: float = Field(default=0.0, ge=0)
    min_order_usd: float = Field(default=1.0, gt=0)

    # Execution
    # Read-only: orders are signed and logged but never sent
    read_only: bool = True
    order_expiration_sec: int = Field(default=300, ge=300, le=3600)
    fee_rate_bps: int = Field(default=0, ge=0)
    # Opportunities older than this are skipped. 0 disables the check
    max_snapshot_age_sec: float = Field(default=2.0, ge=0)
    # $1 in USDC base units (6 decimals)
    min_allowance_units: int = Field(default=1_000_000, ge=0)
    rpc_timeout_sec: float = Field(default=10.0, gt=0)
    order_timeout_sec: float = Field(default=10.0, gt=0)

    # Monitoring loop
    check_interval_sec: float = Field(default=1.0, gt=0)
    market_window_sec: int = Field(default=900, ge=60)
    asset_a: str = "eth"
    asset_b: str = "btc"
    price_feed: str = Field(default="rest", pattern="^(rest|ws)$")
    ws_reconnect_delay_sec: float = Field(default=2.0, gt=0)
    ws_max_quote_age_sec: float = Field(default=10.0, gt=0)
    discovery_retry_sec: float = Field(default=10.0, gt=0)

    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_price_band(self) -> "Config":
        if self.min_reasonable_price > self.max_reasonable_price:
            raise ValueError(
                f"min_reasonable_price {self.min_reasonable_price} > "
                f"max_reasonable_price {self.max_reasonable_price}"
            )
        return self

    @property
    def has_wallet(self) -> bool:
        return bool(self.private_key and self.proxy_wallet)

    @property
    def has_api_creds(self) -> bool:
        return bool(self.poly_api_key and self.poly_api_secret and self.poly_api_passphrase)


def sizing_policy(cfg: Config) -> SizingPolicy:
    """Build the immutable sizing policy selected by trade_mode."""
    return SizingPolicy(
        mode=cfg.trade_mode,
        fixed_usd=Decimal(str(cfg.fixed_usdc_per_trade)),
        fraction=Decimal(str(cfg.percentage_per_trade)) / 100,
        cap_usd=Decimal(str(cfg.max_trade_usd)) if cfg.max_trade_usd > 0 else None,
    )


def detector_config(cfg: Config) -> DetectorConfig:
    """Detector thresholds as Decimals (config floats go through str to keep 0.99 exact)."""
    return DetectorConfig(
        min_profit_threshold=Decimal(str(cfg.min_profit_threshold)),
        max_sum_threshold=Decimal(str(cfg.arbitrage_max_sum)),
        min_reasonable_price=Decimal(str(cfg.min_reasonable_price)),
        max_reasonable_price=Decimal(str(cfg.max_reasonable_price)),
        min_total_cost=Decimal(str(cfg.min_total_cost)),
    )


def load_config() -> Config:
    """Load and validate config from environment. Raises on invalid fields."""
    return Config()
