"""
signalwatch Runner: Operator Commands

Protocol-neutral text commands over the trade log, watch-list, settings and
scan loop. Every command returns a short reply string; a chat bot, HTTP
endpoint or CLI only needs to pass (user id, text) in and send the reply out.

Mutating commands are gated by an owner allow-list (open when unset).
Usage errors come back as usage text; unexpected errors are logged with a
traceback and reported tersely.
"""

import logging
import os
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from analytics.trade_log import compute_since, summarize_trades
from core.exceptions import CommandUsageError
from core.models import TradeSummary
from core.watchlist import guess_symbol_from_id

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY_TZ = "America/Los_Angeles"
MAX_SUMMARY_DAYS = 7

Handler = Callable[[List[str]], str]


def parse_owner_ids(raw: Optional[str]) -> Tuple[str, ...]:
    """Comma-separated operator ids, e.g. the OWNER_IDS environment variable."""
    return tuple(part.strip() for part in (raw or "").split(",") if part.strip())


def _format_counts(counts: Dict[str, int]) -> str:
    items = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return ", ".join(f"{k}: {v}" for k, v in items) or "—"


def format_summary(tz_name: str, since_iso: str, open_summary: TradeSummary, closed_summary: TradeSummary) -> str:
    return (
        f"📊 **Summary** ({tz_name}, since {since_iso})\n"
        f"• Open trades: **{open_summary.total}**\n"
        f"  • by type: {_format_counts(open_summary.by_type)}\n"
        f"  • by symbol: {_format_counts(open_summary.by_symbol)}\n"
        f"• Closed trades: **{closed_summary.total}**\n"
        f"  • by type: {_format_counts(closed_summary.by_type)}\n"
        f"  • by symbol: {_format_counts(closed_summary.by_symbol)}"
    )


def parse_summary_args(args: List[str], default_tz: str = DEFAULT_SUMMARY_TZ) -> Tuple[int, str]:
    """``[DAYS] [utc]`` → (days clamped to 1–7, timezone name)."""
    days = 1
    tz_name = default_tz
    for arg in args[:2]:
        if arg.lower() == "utc":
            tz_name = "UTC"
            continue
        try:
            days = max(1, min(MAX_SUMMARY_DAYS, int(arg)))
        except ValueError:
            days = 1
    return days, tz_name


class CommandRouter:
    """Dispatch ``!command args...`` text to handlers."""

    MUTATING = frozenset({"close", "addcoin", "removecoin", "addstock", "removestock", "set", "scan"})

    def __init__(
        self,
        trade_log,
        watchlist,
        settings,
        scan_loop,
        owner_ids: Iterable[str] = (),
        prefix: str = "!",
        summary_timezone: str = DEFAULT_SUMMARY_TZ,
    ):
        self.trade_log = trade_log
        self.watchlist = watchlist
        self.settings = settings
        self.scan_loop = scan_loop
        self.owner_ids = frozenset(str(o) for o in owner_ids)
        self.prefix = prefix
        self.summary_timezone = summary_timezone
        self._handlers: Dict[str, Handler] = {
            "close": self._close,
            "summary": self._summary,
            "addcoin": self._add_coin,
            "removecoin": self._remove_coin,
            "listcoins": self._list_coins,
            "addstock": self._add_stock,
            "removestock": self._remove_stock,
            "liststocks": self._list_stocks,
            "set": self._set,
            "get": self._get,
            "settings": self._list_settings,
            "scan": self._scan,
            "help": self._help,
        }

    @classmethod
    def from_config(cls, raw_config: Optional[Dict], trade_log, watchlist, settings, scan_loop) -> "CommandRouter":
        raw_config = raw_config or {}
        owner_env = raw_config.get("owner_ids_env", "OWNER_IDS")
        return cls(
            trade_log,
            watchlist,
            settings,
            scan_loop,
            owner_ids=parse_owner_ids(os.getenv(owner_env, "")),
            prefix=raw_config.get("prefix", "!"),
            summary_timezone=raw_config.get("summary_timezone", DEFAULT_SUMMARY_TZ),
        )

    def is_authorized(self, user_id) -> bool:
        if not self.owner_ids:
            return True
        return str(user_id) in self.owner_ids

    def handle(self, user_id, text: str) -> Optional[str]:
        """Reply for a command, or None when ``text`` is not a command."""
        content = (text or "").strip()
        if not content.startswith(self.prefix):
            return None
        parts = content[len(self.prefix):].split()
        if not parts:
            return None
        name, args = parts[0].lower(), parts[1:]
        handler = self._handlers.get(name)
        if handler is None:
            return None

        if name in self.MUTATING and not self.is_authorized(user_id):
            logger.warning(f"Unauthorized {name} command from {user_id}")
            return "⛔ Not authorized."

        try:
            return handler(args)
        except CommandUsageError as e:
            return f"⚠️ Usage: `{e.usage}`"
        except Exception as e:
            logger.error(f"Command {name} failed: {e}", exc_info=True)
            return "❌ Command failed. Check logs."

    # -----------------------
    # Trade lifecycle
    # -----------------------
    def _close(self, args: List[str]) -> str:
        if not args:
            raise CommandUsageError(f"{self.prefix}close SYMBOL [TYPE] [NOTE]")
        symbol = args[0].upper()
        trade_type = args[1].upper() if len(args) > 1 else "RSI"
        note = " ".join(args[2:])
        count = self.trade_log.close_trade(symbol, trade_type, note)
        if count == 0:
            return f"ℹ️ No OPEN trades found for **{symbol}** ({trade_type})."
        return f"✅ Closed {count} trade(s) for **{symbol}** ({trade_type})\n📝 {note or 'No note provided'}"

    def _summary(self, args: List[str]) -> str:
        days, tz_name = parse_summary_args(args, self.summary_timezone)
        since_iso = compute_since(days, tz_name).isoformat()
        open_summary = summarize_trades(self.trade_log.open_trades())
        closed_summary = summarize_trades(self.trade_log.closed_since(since_iso))
        return format_summary(tz_name, since_iso, open_summary, closed_summary)

    # -----------------------
    # Watch-list
    # -----------------------
    def _add_coin(self, args: List[str]) -> str:
        if not args:
            raise CommandUsageError(f"{self.prefix}addcoin <coingecko-id> [SYMBOL]")
        coin_id = args[0]
        symbol = (args[1] if len(args) > 1 else guess_symbol_from_id(coin_id)).upper()
        self.watchlist.add_crypto(coin_id, symbol)
        return f"✅ Added coin **{symbol}** (id: {coin_id}) to watchlist."

    def _remove_coin(self, args: List[str]) -> str:
        if not args:
            raise CommandUsageError(f"{self.prefix}removecoin <coingecko-id>")
        count = self.watchlist.remove_crypto(args[0])
        if count > 0:
            return f"🗑️ Removed **{args[0]}** from crypto watchlist ({count} row(s))."
        return f"ℹ️ No entries found for **{args[0]}**."

    def _list_coins(self, args: List[str]) -> str:
        instruments = self.watchlist.list_crypto()
        if not instruments:
            return "ℹ️ Crypto watchlist is empty."
        lines = [f"• {i.symbol} (id: {i.id})" for i in instruments]
        return "🪙 **Crypto Watchlist**\n" + "\n".join(lines)

    def _add_stock(self, args: List[str]) -> str:
        if not args:
            raise CommandUsageError(f"{self.prefix}addstock <SYMBOL>")
        instrument = self.watchlist.add_stock(args[0])
        return f"✅ Added stock **{instrument.symbol}** to watchlist."

    def _remove_stock(self, args: List[str]) -> str:
        if not args:
            raise CommandUsageError(f"{self.prefix}removestock <SYMBOL>")
        symbol = args[0].upper()
        count = self.watchlist.remove_stock(symbol)
        if count > 0:
            return f"🗑️ Removed **{symbol}** from stock watchlist ({count} row(s))."
        return f"ℹ️ No entries found for **{symbol}**."

    def _list_stocks(self, args: List[str]) -> str:
        instruments = self.watchlist.list_stocks()
        if not instruments:
            return "ℹ️ Stock watchlist is empty."
        return "📈 **Stock Watchlist**\n" + "\n".join(f"• {i.symbol}" for i in instruments)

    # -----------------------
    # Settings
    # -----------------------
    def _set(self, args: List[str]) -> str:
        if len(args) < 2:
            raise CommandUsageError(f"{self.prefix}set <KEY> <VALUE>")
        key = args[0].upper()
        value = " ".join(args[1:])
        self.settings.set_setting(key, value)
        return f"✅ Set `{key}` = `{value}`. Will apply on next scan (or run `{self.prefix}scan`)."

    def _get(self, args: List[str]) -> str:
        if not args:
            raise CommandUsageError(f"{self.prefix}get <KEY>")
        key = args[0].upper()
        value = self.settings.get_setting(key)
        if value is None:
            return f"ℹ️ {key} not set."
        return f"🔎 {key} = {value}"

    def _list_settings(self, args: List[str]) -> str:
        values = self.settings.get_all_settings()
        if not values:
            return "ℹ️ No settings stored."
        return "⚙️ **Settings**\n" + "\n".join(f"• {k} = {v}" for k, v in values.items())

    # -----------------------
    # Scan
    # -----------------------
    def _scan(self, args: List[str]) -> str:
        stats = self.scan_loop.run_now()
        if stats is None:
            return "⏳ A scan is already running; try again when it finishes."
        return (
            f"✅ Scan complete: {stats.instruments} instrument(s), "
            f"{stats.signals} signal(s), {stats.failures} failure(s)."
        )

    def _help(self, args: List[str]) -> str:
        p = self.prefix
        return "\n".join([
            "🧭 **Commands**",
            f"• {p}close SYMBOL [TYPE] [NOTE]",
            f"• {p}summary [DAYS] [utc]",
            f"• {p}addcoin <id> [SYMBOL] / {p}removecoin <id> / {p}listcoins",
            f"• {p}addstock <SYMBOL> / {p}removestock <SYMBOL> / {p}liststocks",
            f"• {p}set <KEY> <VALUE> / {p}get <KEY> / {p}settings",
            f"• {p}scan",
        ])


__all__ = ["CommandRouter", "parse_owner_ids", "parse_summary_args", "format_summary"]
