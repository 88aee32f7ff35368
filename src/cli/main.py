"""
CLI entry point: tradebook order | cancel | orders | positions | quote | analyze
| summary | hypothesis | sync | health.

Every command loads config from --config (default config.yaml), prints
human-readable output, and logs to the journal. User-facing errors are shown
as one line and exit with code 1.
"""

import functools
import logging
import sys
import time

import click
from dotenv import load_dotenv

from config import ConfigError, load_config
from trade_core.contracts import HypothesisStatus, TradeStatus, ValidationResult
from trade_core.errors import TradingError

load_dotenv()

logger = logging.getLogger("tradebook")


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )


def _user_errors(fn):
    """Turn expected failures into a one-line message and exit code 1."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except TradingError as exc:
            raise click.ClickException(exc.reason) from exc
        except (ConfigError, FileNotFoundError, ImportError, ValueError) as exc:
            raise click.ClickException(str(exc)) from exc

    return wrapper


def _broker(ctx: click.Context):
    from broker import PaperBroker

    if "broker" not in ctx.obj:
        cfg = load_config(ctx.obj["config_path"])
        ctx.obj["config"] = cfg
        ctx.obj["broker"] = PaperBroker.from_config(cfg)
    return ctx.obj["broker"]


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
@click.pass_context
def cli(ctx: click.Context, config_path: str, verbose: bool) -> None:
    """tradebook: paper trading, position accounting and hypothesis checks."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------- tradebook order / cancel / orders ----------


@cli.command()
@click.argument("side", type=click.Choice(["buy", "sell"], case_sensitive=False))
@click.argument("symbol")
@click.argument("qty", type=int)
@click.option("--limit", "limit_price", type=float, default=None, help="Limit price. Omit for a market order.")
@click.option("--tif", type=click.Choice(["DAY", "GTC"], case_sensitive=False), default="DAY", show_default=True)
@click.pass_context
@_user_errors
def order(ctx: click.Context, side: str, symbol: str, qty: int, limit_price: float | None, tif: str) -> None:
    """Place a paper order, e.g. ``tradebook order buy AAPL 10 --limit 180``."""
    from cli.output import format_trade

    broker = _broker(ctx)
    trade = broker.place_order(
        {
            "symbol": symbol,
            "side": side.upper(),
            "quantity": qty,
            "type": "LIMIT" if limit_price is not None else "MARKET",
            "limit_price": limit_price,
            "time_in_force": tif.upper(),
        }
    )
    click.echo(format_trade(trade))


@cli.command()
@click.argument("order_id")
@click.pass_context
@_user_errors
def cancel(ctx: click.Context, order_id: str) -> None:
    """Cancel a NEW (resting) order."""
    from cli.output import format_trade

    click.echo(format_trade(_broker(ctx).cancel_order(order_id)))


@cli.command()
@click.option("--limit", default=20, show_default=True, help="Most recent N orders.")
@click.option(
    "--status",
    type=click.Choice([s.value for s in TradeStatus], case_sensitive=False),
    default=None,
    help="Only orders in this status.",
)
@click.pass_context
@_user_errors
def orders(ctx: click.Context, limit: int, status: str | None) -> None:
    """List orders, newest first."""
    from cli.output import format_orders

    trades = _broker(ctx).get_orders(limit=limit, status=TradeStatus(status.upper()) if status else None)
    click.echo(format_orders(trades))


# ---------- tradebook positions / quote ----------


@cli.command()
@click.pass_context
@_user_errors
def positions(ctx: click.Context) -> None:
    """Open positions marked to the latest quote."""
    from cli.output import format_positions

    click.echo(format_positions(_broker(ctx).get_open_positions()))


@cli.command()
@click.argument("symbol")
@click.pass_context
@_user_errors
def quote(ctx: click.Context, symbol: str) -> None:
    """Latest quote for SYMBOL."""
    from cli.output import format_quote

    click.echo(format_quote(_broker(ctx).get_quote(symbol)))


# ---------- tradebook analyze / summary ----------


@cli.command()
@click.pass_context
@_user_errors
def analyze(ctx: click.Context) -> None:
    """Realized P&L statistics and improvement suggestions."""
    from cli.output import format_analysis

    click.echo(format_analysis(_broker(ctx).compute_analysis()))


@cli.command()
@click.pass_context
@_user_errors
def summary(ctx: click.Context) -> None:
    """Per-symbol P&L, most active hour and overall verdict."""
    from cli.output import format_summary

    click.echo(format_summary(_broker(ctx).summarize()))


# ---------- tradebook hypothesis ----------


@cli.group()
def hypothesis() -> None:
    """Test and track trading hypotheses against your trade history."""


@hypothesis.command("check")
@click.argument("text")
@click.pass_context
@_user_errors
def hypothesis_check(ctx: click.Context, text: str) -> None:
    """One-off check, e.g. ``tradebook hypothesis check "AAPL in the morning"``."""
    from cli.output import format_hypothesis_result

    click.echo(format_hypothesis_result(text, _broker(ctx).check_hypothesis(text)))


@hypothesis.command("add")
@click.argument("text")
@click.pass_context
@_user_errors
def hypothesis_add(ctx: click.Context, text: str) -> None:
    """Start tracking a hypothesis."""
    from cli.output import format_hypothesis

    click.echo(format_hypothesis(_broker(ctx).add_hypothesis(text)))


@hypothesis.command("validate")
@click.argument("hypothesis_id")
@click.option("--valid/--invalid", "valid", default=None, help="Record your own verdict instead of checking trades.")
@click.option("--notes", default="", help="Free-text note stored with the validation.")
@click.pass_context
@_user_errors
def hypothesis_validate(ctx: click.Context, hypothesis_id: str, valid: bool | None, notes: str) -> None:
    """Record one validation. Without --valid/--invalid the trade history decides."""
    from cli.output import format_hypothesis

    result = None
    if valid is not None:
        result = ValidationResult.VALID if valid else ValidationResult.INVALID
    click.echo(format_hypothesis(_broker(ctx).validate_hypothesis(hypothesis_id, result, notes)))


@hypothesis.command("list")
@click.option(
    "--status",
    type=click.Choice([s.value for s in HypothesisStatus], case_sensitive=False),
    default=None,
)
@click.pass_context
@_user_errors
def hypothesis_list(ctx: click.Context, status: str | None) -> None:
    """Tracked hypotheses, oldest first."""
    from cli.output import format_hypotheses

    wanted = HypothesisStatus(status.upper()) if status else None
    click.echo(format_hypotheses(_broker(ctx).list_hypotheses(wanted)))


@hypothesis.command("archive")
@click.argument("hypothesis_id")
@click.pass_context
@_user_errors
def hypothesis_archive(ctx: click.Context, hypothesis_id: str) -> None:
    """Stop tracking a hypothesis (kept for reference)."""
    from cli.output import format_hypothesis

    click.echo(format_hypothesis(_broker(ctx).archive_hypothesis(hypothesis_id)))


# ---------- tradebook sync ----------


@cli.command()
@click.option("--watch", "interval", type=int, default=None, help="Repeat every N seconds until interrupted.")
@click.pass_context
@_user_errors
def sync(ctx: click.Context, interval: int | None) -> None:
    """Refresh position marks and work resting orders."""
    from broker import SyncJob
    from cli.output import format_sync_result
    from cli.structured_log import StructuredEventLogger

    broker = _broker(ctx)
    cfg = ctx.obj["config"]

    events = StructuredEventLogger(enabled=cfg.alerting.structured_logs, webhook_url=cfg.alerting.webhook_url)
    job = SyncJob(broker, events=events)

    while True:
        result = job.run_full_sync()
        click.echo(format_sync_result(result))
        if interval is None:
            if not result.success:
                raise SystemExit(1)
            return
        try:
            time.sleep(interval)
        except KeyboardInterrupt:
            logger.info("Sync loop stopped")
            return


# ---------- tradebook health ----------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check system health: config, state DB, quote source.

    Exit code 0 = healthy, 1 = unhealthy. Designed for Docker HEALTHCHECK.
    """
    checks: list[tuple[str, bool, str]] = []

    try:
        cfg = load_config(ctx.obj["config_path"])
        checks.append(("config", True, f"loaded (quotes={cfg.data.quote_source}, oversell={cfg.trading.oversell_policy})"))
    except Exception as e:
        checks.append(("config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    try:
        from data.trade_store import TradeStore

        store = TradeStore(cfg.execution.state_path)
        checks.append(("state", True, f"{store.count_trades()} trades, {len(store.list_positions())} positions"))
    except Exception as e:
        checks.append(("state", False, str(e)))

    try:
        from data.quotes import get_quote_source

        get_quote_source(cfg.data)
        checks.append(("quotes", True, cfg.data.quote_source))
    except Exception as e:
        checks.append(("quotes", False, str(e)))

    checks.append(("trading", True, "enabled" if cfg.trading.enabled else "disabled"))

    _print_health(checks)
    healthy = all(ok for _, ok, _ in checks)
    raise SystemExit(0 if healthy else 1)


def _print_health(checks: list[tuple[str, bool, str]]) -> None:
    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        click.echo(f"  [{status}] {name}: {detail}")
    healthy = all(ok for _, ok, _ in checks)
    click.echo(f"\nHealth: {'HEALTHY' if healthy else 'UNHEALTHY'}")


if __name__ == "__main__":
    cli()
