from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
import base64
import json
import os
import base58
import yaml
from dotenv import load_dotenv
from solders.keypair import Keypair

from launch_sniper.core.errors import ConfigValidationError

SWAP_METHODS = ("standard", "nozomi", "jito", "paper")

@dataclass
class TradingConfig:
    """Entry sizing and exit thresholds"""
    sniper_amount: float = 0.1          # SOL committed per snipe
    profit_target: float = 2.0          # Exit when value/entry reaches this ratio
    stop_loss: float = 0.5              # Exit when value/entry falls to this ratio
    max_hold_time: float = 300.0        # Seconds before a position is force-closed
    max_positions: int = 5              # Maximum number of concurrent positions
    liquidity_threshold: float = 0.1    # Minimum SOL added to the pool to qualify
    monitor_interval: float = 5.0       # Seconds between position sweeps
    risk_monitor_interval: float = 10.0 # Seconds between risk level checks

    def validate(self) -> List[str]:
        errors = []
        if self.sniper_amount <= 0:
            errors.append("sniper_amount must be greater than 0")
        if self.profit_target <= 1.0:
            errors.append("profit_target must be greater than 1.0")
        if not 0 < self.stop_loss < 1.0:
            errors.append("stop_loss must be between 0 and 1.0")
        if self.max_hold_time <= 0:
            errors.append("max_hold_time must be greater than 0")
        if self.max_positions < 1:
            errors.append("max_positions must be at least 1")
        if self.liquidity_threshold <= 0:
            errors.append("liquidity_threshold must be greater than 0")
        if self.monitor_interval <= 0 or self.risk_monitor_interval <= 0:
            errors.append("monitor intervals must be greater than 0")
        return errors

@dataclass
class RiskParameters:
    """Risk management parameters"""
    max_daily_loss: float = 1.0     # SOL lost in a day before new entries stop
    max_single_loss: float = 0.5    # Largest SOL amount a single entry may commit
    trade_cooldown: float = 5.0     # Seconds between successive trades

    def validate(self) -> List[str]:
        errors = []
        if self.max_daily_loss <= 0:
            errors.append("max_daily_loss must be greater than 0")
        if self.max_single_loss <= 0:
            errors.append("max_single_loss must be greater than 0")
        if self.trade_cooldown < 0:
            errors.append("trade_cooldown must not be negative")
        return errors

@dataclass
class SwapConfig:
    """Routing service and submission channel settings"""
    method: str = "standard"
    quote_api_url: str = "https://lite-api.jup.ag/swap/v1"
    slippage_bps: int = 5000
    priority_fee_lamports: int = 10_000
    jito_tip_lamports: int = 100_000
    nozomi_tip_lamports: int = 200_000
    max_retries: int = 3
    retry_delay: float = 1.0
    confirm_timeout: float = 30.0
    http_timeout: float = 10.0
    paper_balance: float = 10.0     # Starting SOL of the simulated wallet

    def validate(self) -> List[str]:
        errors = []
        if self.method not in SWAP_METHODS:
            errors.append(f"swap method must be one of {', '.join(SWAP_METHODS)}")
        if not 0 < self.slippage_bps <= 10_000:
            errors.append("slippage_bps must be between 1 and 10000")
        if min(self.priority_fee_lamports, self.jito_tip_lamports, self.nozomi_tip_lamports) < 0:
            errors.append("fees and tips must not be negative")
        if self.max_retries < 1:
            errors.append("max_retries must be at least 1")
        if self.retry_delay < 0:
            errors.append("retry_delay must not be negative")
        if self.confirm_timeout <= 0 or self.http_timeout <= 0:
            errors.append("timeouts must be greater than 0")
        if self.paper_balance < 0:
            errors.append("paper_balance must not be negative")
        return errors

@dataclass
class StreamConfig:
    pool_authority: str = "WLHv2UAZm6z4KyaaELi5pjdbJh6RESMva1Rnn8pJVVh"
    reconnect_delay: float = 1.0
    queue_size: int = 100

    def validate(self) -> List[str]:
        errors = []
        if self.reconnect_delay < 0:
            errors.append("reconnect_delay must not be negative")
        if self.queue_size < 1:
            errors.append("queue_size must be at least 1")
        return errors

@dataclass
class PoolFilters:
    pumpfun: bool = True
    pumpswap: bool = True
    raydium_launchlab: bool = True
    raydium_cpmm: bool = True

    def enabled(self) -> List[str]:
        return [name for name, on in vars(self).items() if on]

@dataclass
class LoggingConfig:
    level: str = "DEBUG"
    log_dir: str = "data/logs"
    console_output: bool = True
    trade_journal_path: str = "data/trades/trades.csv"

@dataclass
class WalletConfig:
    """Secrets, read from the environment rather than the YAML file"""
    private_key: Optional[str] = None
    rpc_url: Optional[str] = None
    ws_url: Optional[str] = None
    nozomi_url: Optional[str] = None
    jito_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "WalletConfig":
        nozomi_url = os.getenv('NOZOMI_URL')
        nozomi_uuid = os.getenv('NOZOMI_UUID')
        if nozomi_url and nozomi_uuid:
            nozomi_url = f"{nozomi_url}?c={nozomi_uuid}"
        return cls(
            private_key=os.getenv('PRIVATE_KEY'),
            rpc_url=os.getenv('RPC_URL'),
            ws_url=os.getenv('WS_URL'),
            nozomi_url=nozomi_url,
            jito_url=os.getenv('JITO_URL'),
        )

    def validate(self, method: str) -> List[str]:
        errors = []
        if method == "paper":
            return errors
        for name in ("private_key", "rpc_url", "ws_url"):
            if not getattr(self, name):
                errors.append(f"Missing required environment variable: {name.upper()}")
        if method == "nozomi" and not self.nozomi_url:
            errors.append("Missing required environment variable: NOZOMI_URL")
        return errors

class Config:
    def __init__(self,
                 trading: TradingConfig = None,
                 risk: RiskParameters = None,
                 swap: SwapConfig = None,
                 stream: StreamConfig = None,
                 pools: PoolFilters = None,
                 logging: LoggingConfig = None,
                 wallet: WalletConfig = None):
        self.trading = trading or TradingConfig()
        self.risk = risk or RiskParameters()
        self.swap = swap or SwapConfig()
        self.stream = stream or StreamConfig()
        self.pools = pools or PoolFilters()
        self.logging = logging or LoggingConfig()
        self.wallet = wallet or WalletConfig()
        self.validate()

    @property
    def dry_run(self) -> bool:
        return self.swap.method == "paper"

    def validate(self):
        """Collect every out-of-range value and raise them together"""
        errors = []
        errors.extend(self.trading.validate())
        errors.extend(self.risk.validate())
        errors.extend(self.swap.validate())
        errors.extend(self.stream.validate())
        errors.extend(self.wallet.validate(self.swap.method))
        if not self.pools.enabled():
            errors.append("at least one pool kind must be enabled")
        if errors:
            raise ConfigValidationError(errors)

    @classmethod
    def load(cls, config_path: str = "config.yaml", env_file: Optional[str] = None) -> "Config":
        """Load configuration from a YAML file and secrets from the environment"""
        load_dotenv(env_file)
        config_data: Dict[str, Any] = {}
        if os.path.exists(config_path):
            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}

        try:
            return cls(
                trading=TradingConfig(**config_data.get('trading', {})),
                risk=RiskParameters(**config_data.get('risk', {})),
                swap=SwapConfig(**config_data.get('swap', {})),
                stream=StreamConfig(**config_data.get('stream', {})),
                pools=PoolFilters(**config_data.get('pools', {})),
                logging=LoggingConfig(**config_data.get('logging', {})),
                wallet=WalletConfig.from_env(),
            )
        except TypeError as e:
            raise ConfigValidationError([f"Unknown configuration key: {e}"]) from e

def load_keypair(secret: str) -> Keypair:
    """Decode a private key given as base58, base64 or a JSON byte array"""
    decoders = (
        lambda s: base58.b58decode(s),
        lambda s: base64.b64decode(s, validate=True),
        lambda s: bytes(json.loads(s)),
    )
    for decode in decoders:
        try:
            return Keypair.from_bytes(decode(secret.strip()))
        except Exception:
            continue
    raise ConfigValidationError(
        ["Invalid private key format. Supported formats: base58, base64, or JSON array"]
    )
