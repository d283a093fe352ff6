"""
Configuration Validation Module

Validates app.yaml against Pydantic schemas.
Ensures the config file is correct before the scanner starts.

Usage:
    from tools.config_validator import validate_all_configs

    errors = validate_all_configs("config")
    if errors:
        for error in errors:
            print(f"ERROR: {error}")
        sys.exit(1)
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, ValidationError

from core.settings import MAX_SCAN_INTERVAL_MINUTES, MIN_SCAN_INTERVAL_MINUTES

logger = logging.getLogger(__name__)


# ===== App Schema =====
class AppSection(BaseModel):
    """Process identity"""
    name: str = Field(default="signalwatch", min_length=1, description="Process name used in logs")


class LoggingConfig(BaseModel):
    """Log destination and verbosity"""
    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$", description="Root log level")
    file: str = Field(default="logs/signalwatch.log", min_length=1, description="Log file path")

    @field_validator('level', mode='before')
    @classmethod
    def upper_level(cls, v: Any) -> Any:
        """Accept lowercase level names"""
        return v.upper() if isinstance(v, str) else v


class DefaultCoin(BaseModel):
    """Fallback crypto instrument"""
    id: str = Field(min_length=1, description="CoinGecko coin id")
    symbol: Optional[str] = Field(default=None, description="Display ticker")


class ScannerSection(BaseModel):
    """Scanner defaults, overridable at runtime from the settings table"""
    rsi_period: int = Field(default=14, ge=2, description="RSI lookback period")
    breakout_threshold_pct: float = Field(default=2.0, ge=0, description="Breakout margin over prior high (%)")
    breakout_lookback: Optional[int] = Field(default=None, ge=0, description="Bars in breakout window (0/None = all)")
    inter_call_delay_ms: int = Field(default=2000, ge=0, description="Pause between instruments (ms)")
    scan_interval_minutes: int = Field(
        default=60,
        ge=MIN_SCAN_INTERVAL_MINUTES,
        le=MAX_SCAN_INTERVAL_MINUTES,
        description="Minutes between cycles",
    )
    startup_jitter_seconds: float = Field(default=10.0, ge=0, description="Max random delay before first cycle")
    default_stocks: List[str] = Field(default_factory=list, description="Fallback stock tickers")
    default_coins: List[DefaultCoin] = Field(default_factory=list, description="Fallback crypto instruments")

    @field_validator('default_stocks')
    @classmethod
    def validate_stocks(cls, v: List[str]) -> List[str]:
        """Tickers must be non-blank"""
        for symbol in v:
            if not str(symbol).strip():
                raise ValueError("default_stocks entries must be non-empty tickers")
        return v


class StoreSection(BaseModel):
    """Record store connection (secrets referenced by env var name)"""
    url_env: str = Field(default="SUPABASE_URL", min_length=1)
    key_env: str = Field(default="SUPABASE_KEY", min_length=1)
    timeout_seconds: float = Field(default=10.0, gt=0)
    max_retries: int = Field(default=3, ge=1, le=10)
    trades_table: str = Field(default="trades", min_length=1)
    watchlist_table: str = Field(default="watchlist", min_length=1)
    settings_table: str = Field(default="settings", min_length=1)


class AlertsSection(BaseModel):
    """Webhook notifications"""
    enabled: bool = Field(default=True)
    webhook_url: Optional[str] = Field(default=None, description="Literal URL or ${VAR} reference")
    webhook_env: str = Field(default="DISCORD_WEBHOOK_URL", min_length=1)
    dry_run: bool = Field(default=False, description="Log alerts instead of posting them")
    timeout_seconds: float = Field(default=10.0, gt=0)
    max_length: int = Field(default=1900, gt=0, le=2000, description="Message truncation length")


class AlphaVantageSection(BaseModel):
    """Stock price provider"""
    enabled: bool = Field(default=True)
    api_key_env: str = Field(default="ALPHA_VANTAGE_API_KEY", min_length=1)
    interval: str = Field(default="5min", pattern="^(1min|5min|15min|30min|60min)$")
    outputsize: str = Field(default="compact", pattern="^(compact|full)$")
    timeout_seconds: float = Field(default=15.0, gt=0)
    max_retries: int = Field(default=2, ge=1, le=10)


class CoinGeckoSection(BaseModel):
    """Crypto price provider"""
    enabled: bool = Field(default=True)
    api_key_env: Optional[str] = Field(default=None)
    vs_currency: str = Field(default="usd", min_length=1)
    days: int = Field(default=2, ge=1, le=90, description="Market chart window (days)")
    timeout_seconds: float = Field(default=15.0, gt=0)
    max_retries: int = Field(default=2, ge=1, le=10)


class ProvidersSection(BaseModel):
    alpha_vantage: AlphaVantageSection = Field(default_factory=AlphaVantageSection)
    coingecko: CoinGeckoSection = Field(default_factory=CoinGeckoSection)


class CommandsSection(BaseModel):
    """Operator command surface"""
    enabled: bool = Field(default=True)
    host: str = Field(default="127.0.0.1", min_length=1)
    port: int = Field(default=8088, ge=0, le=65535)
    prefix: str = Field(default="!", min_length=1, max_length=3)
    owner_ids_env: str = Field(default="OWNER_IDS", min_length=1)
    summary_timezone: str = Field(default="America/Los_Angeles", min_length=1)

    @field_validator('summary_timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Timezone must be a known IANA name"""
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v


class MetricsSection(BaseModel):
    enabled: bool = Field(default=False)
    port: int = Field(default=9100, ge=0, le=65535)


class AppSchema(BaseModel):
    """Complete app configuration schema"""
    app: AppSection = Field(default_factory=AppSection)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    scanner: ScannerSection = Field(default_factory=ScannerSection)
    store: StoreSection = Field(default_factory=StoreSection)
    alerts: AlertsSection = Field(default_factory=AlertsSection)
    providers: ProvidersSection = Field(default_factory=ProvidersSection)
    commands: CommandsSection = Field(default_factory=CommandsSection)
    metrics: MetricsSection = Field(default_factory=MetricsSection)


# ===== Validation Functions =====
def _format_yaml_error(file_path: Path, error: yaml.YAMLError) -> str:
    """Return enriched message with line/column context for YAML errors."""

    message = f"Malformed YAML in {file_path}: {error}"
    mark = getattr(error, "problem_mark", None)
    if mark is None:
        return message

    line = getattr(mark, "line", None)
    column = getattr(mark, "column", None)
    if line is None or column is None:
        return message

    raw_lines = file_path.read_text().splitlines()
    start = max(line - 2, 0)
    end = min(line + 3, len(raw_lines))

    snippet_lines: List[str] = []
    for idx in range(start, end):
        pointer = "▶" if idx == line else " "
        snippet_lines.append(f"{pointer} {idx + 1:04d} | {raw_lines[idx]}")

    problem = getattr(error, "problem", str(error))
    return (
        f"Malformed YAML in {file_path}: line {line + 1}, column {column + 1}: {problem}\n"
        f"Context:\n" + "\n".join(snippet_lines)
    )


def load_yaml_file(file_path: Path) -> Dict[str, Any]:
    """
    Load YAML file and return as dict.

    Raises:
        FileNotFoundError: If file doesn't exist
        yaml.YAMLError: If YAML is malformed
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")

    with open(file_path, 'r') as f:
        try:
            return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise yaml.YAMLError(_format_yaml_error(file_path, e))


def validate_app_config(config_dir: Path) -> List[str]:
    """
    Validate app.yaml against schema.

    Returns:
        List of error messages (empty if valid)
    """
    errors = []
    app_path = config_dir / "app.yaml"

    try:
        config = load_yaml_file(app_path)
        if not isinstance(config, dict):
            errors.append("app.yaml: top level must be a mapping")
            return errors
        AppSchema(**config)
        logger.info("✅ app.yaml validation passed")
    except FileNotFoundError as e:
        errors.append(f"app.yaml: {e}")
    except yaml.YAMLError as e:
        errors.append(f"app.yaml: Invalid YAML - {e}")
    except ValidationError as e:
        for error in e.errors():
            field = " -> ".join(str(loc) for loc in error['loc'])
            errors.append(f"app.yaml: {field}: {error['msg']}")

    return errors


def validate_sanity_checks(config_dir: Path) -> List[str]:
    """
    Logical consistency checks that a per-field schema cannot express.

    Only meaningful once schema validation has passed.
    """
    errors: List[str] = []
    config = load_yaml_file(config_dir / "app.yaml")
    app = AppSchema(**config)

    scanner = app.scanner
    delay_seconds = scanner.inter_call_delay_ms / 1000.0
    if delay_seconds >= scanner.scan_interval_minutes * 60:
        errors.append(
            f"UNSAFE: scanner.inter_call_delay_ms ({scanner.inter_call_delay_ms}) is not shorter than "
            f"scan_interval_minutes ({scanner.scan_interval_minutes}). Every cycle would overrun."
        )

    if app.commands.enabled and app.metrics.enabled and app.commands.port and app.commands.port == app.metrics.port:
        errors.append(
            f"CONFLICT: commands.port and metrics.port are both {app.metrics.port}. "
            f"Use distinct ports."
        )

    providers = app.providers
    if not providers.alpha_vantage.enabled and not providers.coingecko.enabled:
        errors.append("INCOMPLETE: both price providers are disabled; nothing would be scanned.")

    return errors


def validate_all_configs(config_dir: str = "config") -> List[str]:
    """
    Validate all configuration files.

    Performs:
    1. Schema validation (Pydantic type checks)
    2. Sanity checks (logical consistency)
    """
    config_path = Path(config_dir)

    all_errors = []
    all_errors.extend(validate_app_config(config_path))

    # Sanity checks (only if schema validation passed)
    if not all_errors:
        all_errors.extend(validate_sanity_checks(config_path))

    if not all_errors:
        logger.info("✅ All config files validated successfully")
    else:
        logger.error(f"❌ {len(all_errors)} validation error(s) found")

    return all_errors


if __name__ == "__main__":
    """Run validation from command line"""
    import sys

    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')

    config_dir = sys.argv[1] if len(sys.argv) > 1 else "config"

    errors = validate_all_configs(config_dir)

    if errors:
        print("\n❌ Configuration Validation Failed:\n")
        for error in errors:
            print(f"  • {error}")
        print()
        sys.exit(1)
    else:
        print("\n✅ All configuration files are valid!\n")
        sys.exit(0)
