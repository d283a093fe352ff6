"""
signalwatch Runner: Main

Process bootstrap for the scanner.

Flow:
1. Validate and load config/app.yaml
2. Configure logging
3. Build the store adapters, price providers and alerting
4. Start the command server and metrics exporter (optional)
5. Run the scan loop until SIGINT/SIGTERM (or once with --once)
"""

import logging
import signal
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from analytics.trade_log import TradeLog
from core.market_data import AlphaVantageClient, CoinGeckoClient
from core.models import InstrumentKind
from core.settings import ScannerConfig, SettingsStore
from core.watchlist import WatchlistStore, defaults_from_config
from infra.alerting import AlertService
from infra.command_server import CommandServer
from infra.metrics import CycleStats, MetricsRecorder
from infra.record_store import RecordStoreClient
from runner.commands import CommandRouter
from runner.scan_loop import ScanLoop

logger = logging.getLogger(__name__)


class ScannerApp:
    """
    Wires every component from config and owns the process lifecycle.

    Responsibilities:
    - Load and validate config
    - Configure logging
    - Build the scan loop and command surface
    - Handle shutdown signals
    """

    def __init__(self, config_dir: str = "config", enable_commands: bool = True):
        self.config_dir = Path(config_dir)
        from tools.config_validator import validate_all_configs
        validation_errors = validate_all_configs(config_dir)
        if validation_errors:
            logger.error("=" * 80)
            logger.error("CONFIGURATION VALIDATION FAILED")
            logger.error("=" * 80)
            for idx, error in enumerate(validation_errors, start=1):
                lines = str(error).splitlines()
                if not lines:
                    continue
                logger.error(f"{idx:>2}. {lines[0]}")
            logger.error("=" * 80)
            raise ValueError(f"Invalid configuration: {len(validation_errors)} error(s) found")

        self.app_config = self._load_yaml("app.yaml")
        self._setup_logging(self.app_config.get("logging", {}) or {})

        app_name = (self.app_config.get("app", {}) or {}).get("name", "signalwatch")
        logger.info(f"Starting {app_name}")

        # Store credentials are mandatory: StoreConfigurationError stops startup here
        store_cfg = self.app_config.get("store", {}) or {}
        self.store = RecordStoreClient.from_config(store_cfg)
        self.trade_log = TradeLog(self.store, table=store_cfg.get("trades_table", "trades"))
        self.settings = SettingsStore(self.store, table=store_cfg.get("settings_table", "settings"))

        scanner_cfg = self.app_config.get("scanner", {}) or {}
        self.watchlist = WatchlistStore(
            self.store,
            table=store_cfg.get("watchlist_table", "watchlist"),
            defaults=defaults_from_config(scanner_cfg),
        )

        self.alerts = AlertService.from_config(self.app_config.get("alerts", {}))
        if not self.alerts.is_enabled():
            logger.warning("Webhook alerts disabled; signals will only be logged and recorded")

        self.metrics = MetricsRecorder.from_config(self.app_config.get("metrics", {}))

        self.loop = ScanLoop(
            settings=self.settings,
            watchlist=self.watchlist,
            trade_log=self.trade_log,
            alerts=self.alerts,
            providers=self._build_providers(self.app_config.get("providers", {}) or {}),
            base_config=ScannerConfig.from_dict(scanner_cfg),
            metrics=self.metrics,
        )

        commands_cfg = self.app_config.get("commands", {}) or {}
        self.router = CommandRouter.from_config(
            commands_cfg, self.trade_log, self.watchlist, self.settings, self.loop
        )
        if not self.router.owner_ids:
            logger.warning("OWNER_IDS not set; mutating commands are open to every caller")

        self.command_server: Optional[CommandServer] = None
        if enable_commands and commands_cfg.get("enabled", True):
            self.command_server = CommandServer(
                port=int(commands_cfg.get("port", 8088)),
                command_handler=self.router.handle,
                status_provider=self.loop.status,
                host=commands_cfg.get("host", "127.0.0.1"),
            )

        signal.signal(signal.SIGINT, self._handle_stop)
        signal.signal(signal.SIGTERM, self._handle_stop)

        logger.info("Initialized ScannerApp")

    @staticmethod
    def _setup_logging(log_cfg: Dict[str, Any]) -> None:
        log_file = log_cfg.get("file", "logs/signalwatch.log")
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        logging.basicConfig(
            level=getattr(logging, str(log_cfg.get("level", "INFO")).upper()),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            handlers=[logging.FileHandler(log_file), logging.StreamHandler()],
        )

    @staticmethod
    def _build_providers(providers_cfg: Dict[str, Any]) -> Dict[InstrumentKind, Any]:
        providers: Dict[InstrumentKind, Any] = {}

        av_cfg = providers_cfg.get("alpha_vantage", {}) or {}
        if av_cfg.get("enabled", True):
            client = AlphaVantageClient.from_config(av_cfg)
            if not client.api_key:
                logger.warning("ALPHA_VANTAGE_API_KEY not set; every stock fetch will fail until it is")
            providers[InstrumentKind.STOCK] = client
        else:
            logger.info("Alpha Vantage disabled; stocks will not be scanned")

        cg_cfg = providers_cfg.get("coingecko", {}) or {}
        if cg_cfg.get("enabled", True):
            providers[InstrumentKind.CRYPTO] = CoinGeckoClient.from_config(cg_cfg)
        else:
            logger.info("CoinGecko disabled; crypto will not be scanned")

        return providers

    def _load_yaml(self, filename: str) -> dict:
        """Load YAML config file"""
        path = self.config_dir / filename
        with open(path) as f:
            return yaml.safe_load(f) or {}

    def _handle_stop(self, *_):
        """Stop after the current instrument wait; the running cycle is not interrupted."""
        logger.warning("=" * 80)
        logger.warning("SHUTDOWN SIGNAL RECEIVED - stopping scan loop")
        logger.warning("=" * 80)
        self.loop.stop()

    def _start_services(self) -> None:
        self.metrics.start()
        if self.command_server is not None:
            try:
                self.command_server.start()
            except OSError as exc:
                logger.error(f"Command server failed to start: {exc}")
                self.command_server = None

    def _stop_services(self) -> None:
        if self.command_server is not None:
            self.command_server.stop()
            self.command_server = None

    def run_once(self) -> Optional[CycleStats]:
        return self.loop.run_cycle()

    def run_forever(self) -> None:
        self._start_services()
        try:
            self.loop.run_forever()
        finally:
            self._stop_services()
            logger.info("signalwatch stopped")


def main():
    """Entry point"""
    import argparse

    parser = argparse.ArgumentParser(description="signalwatch market signal scanner")
    parser.add_argument("--once", action="store_true", help="Run one scan cycle and exit")
    parser.add_argument("--config-dir", default="config", help="Config directory")
    parser.add_argument("--no-commands", action="store_true", help="Do not start the command server")

    args = parser.parse_args()

    # Logging configured in __init__
    app = ScannerApp(config_dir=args.config_dir, enable_commands=not args.no_commands)

    if args.once:
        app.run_once()
    else:
        app.run_forever()


if __name__ == "__main__":
    main()
