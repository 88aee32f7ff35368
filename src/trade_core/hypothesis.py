"""
Hypothesis verifier: free-text trading hypothesis + trade history -> verdict.

Extraction is regex-based and best effort:
    symbol       upper-case ticker token (AAPL, BRK.B, 7203.T)
    time window  named period (morning, afternoon, ... and 朝/午前/午後/夜)
                 or an explicit hour (10am, 3pm, 15h, 10 o'clock, 10時)
    action       buy/sell keyword; reported in the details, not used to filter

Branches:
    time window present -> compare realized P&L inside vs outside the hours
    symbol only         -> realized P&L of that symbol > 0
    neither             -> realized P&L of everything > 0, fixed confidence 50

Confidence reflects sample coverage, not statistical significance.

Also holds the tracked-hypothesis lifecycle (record_validation, archive):
ACTIVE -> VALIDATED after 5 consecutive VALID checks, ACTIVE -> INVALIDATED
after 3 consecutive INVALID checks.
"""

from __future__ import annotations

import re
from dataclasses import replace
from datetime import date, datetime, timezone, tzinfo
from typing import Iterable, Sequence

from trade_core.contracts import (
    Hypothesis,
    HypothesisConstraints,
    HypothesisResult,
    HypothesisStatus,
    HypothesisValidation,
    Side,
    Trade,
    ValidationResult,
)
from trade_core.errors import NoMatchingData
from trade_core.pnl import compute_analysis, eligible_trades

VALIDATED_AFTER = 5
INVALIDATED_AFTER = 3

MIN_CONFIDENCE = 10.0
MAX_CONFIDENCE = 90.0
NO_CONSTRAINT_CONFIDENCE = 50.0
SYMBOL_FULL_CONFIDENCE_TRADES = 5

_MORNING = (6, 7, 8, 9, 10, 11)
_FORENOON = (9, 10, 11, 12)
_AFTERNOON = (13, 14, 15, 16, 17)
_NIGHT = (18, 19, 20, 21, 22, 23)

PERIOD_HOURS: dict[str, tuple[int, ...]] = {
    "morning": _MORNING,
    "朝": _MORNING,
    "forenoon": _FORENOON,
    "before noon": _FORENOON,
    "午前": _FORENOON,
    "afternoon": _AFTERNOON,
    "午後": _AFTERNOON,
    "evening": _NIGHT,
    "night": _NIGHT,
    "夜": _NIGHT,
}

_SYMBOL_RE = re.compile(r"(?<![A-Za-z0-9.])([A-Z0-9]+(?:\.[A-Z]{1,2})?)(?![A-Za-z0-9])")
_NOT_SYMBOLS = frozenset({
    "A", "I", "AM", "PM", "P", "L", "OK", "US", "ET", "UTC",
    "BUY", "SELL", "DAY", "GTC", "MARKET", "LIMIT", "NOON",
}) | {word.upper() for period in PERIOD_HOURS for word in period.split()}
_HOURISH_RE = re.compile(r"\d{1,2}(?:AM|PM|H)")

_TIME_RE = re.compile(
    r"(?P<period>\bmorning\b|\bforenoon\b|\bbefore noon\b|\bafternoon\b|\bevening\b|\bnight\b|朝|午前|午後|夜)"
    r"|(?<!\d)(?P<hour>\d{1,2})\s*(?:(?P<meridiem>am|pm)\b|時|o'?clock\b|h\b)",
    re.IGNORECASE,
)

_ACTION_RE = re.compile(
    r"(?P<buy>\bbuy(?:s|ing)?\b|\bbought\b|\bpurchas(?:e|es|ed|ing)\b|購入|買)"
    r"|(?P<sell>\bsell(?:s|ing)?\b|\bsold\b|売却|売)",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def extract_symbol(text: str) -> str | None:
    for m in _SYMBOL_RE.finditer(text):
        token = m.group(1)
        if not any(ch.isalpha() for ch in token):
            continue
        if token in _NOT_SYMBOLS or _HOURISH_RE.fullmatch(token):
            continue
        return token
    return None


def _to_24h(hour: int, meridiem: str | None) -> int | None:
    if meridiem is None:
        return hour if 0 <= hour <= 23 else None
    if not 1 <= hour <= 12:
        return None
    if meridiem.lower() == "am":
        return 0 if hour == 12 else hour
    return 12 if hour == 12 else hour + 12


def extract_time_window(text: str) -> tuple[str | None, tuple[int, ...]]:
    """Return (keyword as written, hours) for the first usable time token."""
    for m in _TIME_RE.finditer(text):
        if m.group("period"):
            keyword = m.group("period")
            return keyword, PERIOD_HOURS[keyword.lower()]
        hour = _to_24h(int(m.group("hour")), m.group("meridiem"))
        if hour is not None:
            return m.group(0).strip(), (hour,)
    return None, ()


def extract_action(text: str) -> Side | None:
    m = _ACTION_RE.search(text)
    if m is None:
        return None
    return Side.BUY if m.group("buy") else Side.SELL


def parse_hypothesis(text: str) -> HypothesisConstraints:
    keyword, hours = extract_time_window(text)
    return HypothesisConstraints(
        symbol=extract_symbol(text),
        time_keyword=keyword,
        hours=hours,
        action=extract_action(text),
    )


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


def format_money(value: float) -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def _clamp_confidence(value: float) -> float:
    return min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, value))


def _trade_hour(trade: Trade, tz: tzinfo | None) -> int:
    ts = trade.executed_at
    return (ts.astimezone(tz) if tz is not None else ts).hour


def _net_pnl(trades: Sequence[Trade]) -> float:
    return compute_analysis(trades).net_pnl


def _filter_symbol(trades: Sequence[Trade], symbol: str | None) -> list[Trade]:
    relevant = list(trades)
    if symbol:
        wanted = symbol.upper()
        relevant = [t for t in relevant if t.symbol.upper() == wanted]
    if not relevant:
        raise NoMatchingData("No trades match this hypothesis.")
    return relevant


def _action_note(constraints: HypothesisConstraints) -> str:
    if constraints.action is None:
        return ""
    return f" Action mentioned: {constraints.action.value} (all sides are counted)."


def check_hypothesis(
    trades: Iterable[Trade],
    text: str,
    tz: tzinfo | None = None,
) -> HypothesisResult:
    """Compare realized P&L of the trades a hypothesis talks about.

    Parameters
    ----------
    trades:
        Full trade history. Only eligible FILLED trades are considered.
    text:
        Free-text hypothesis, e.g. "AAPL is more profitable in the morning".
    tz:
        Zone used to read trade hours. None uses each timestamp's own zone.
    """
    constraints = parse_hypothesis(text)
    try:
        relevant = _filter_symbol(eligible_trades(trades), constraints.symbol)
    except NoMatchingData as exc:
        return HypothesisResult(
            supported=False,
            confidence=0.0,
            evidence="No matching data.",
            details=f'No trades were found to test the hypothesis "{text}". {exc.reason}',
            constraints=constraints,
        )

    if constraints.hours:
        return _check_time_window(relevant, constraints, tz)

    if constraints.symbol:
        pnl = _net_pnl(relevant)
        return HypothesisResult(
            supported=pnl > 0,
            confidence=_clamp_confidence(len(relevant) / SYMBOL_FULL_CONFIDENCE_TRADES * 100),
            evidence=f"Total realized P&L for {constraints.symbol} is {format_money(pnl)}.",
            details=f"{len(relevant)} trades involve {constraints.symbol}.{_action_note(constraints)}",
            constraints=constraints,
            pnl=pnl,
        )

    pnl = _net_pnl(relevant)
    return HypothesisResult(
        supported=pnl > 0,
        confidence=NO_CONSTRAINT_CONFIDENCE,
        evidence=f"Total realized P&L is {format_money(pnl)}.",
        details=(
            "Name a symbol or a time of day (for example \"AAPL in the morning\") "
            f"to test a narrower hypothesis.{_action_note(constraints)}"
        ),
        constraints=constraints,
        pnl=pnl,
    )


def _check_time_window(
    relevant: list[Trade],
    constraints: HypothesisConstraints,
    tz: tzinfo | None,
) -> HypothesisResult:
    hours = set(constraints.hours)
    in_range = [t for t in relevant if _trade_hour(t, tz) in hours]
    outside = [t for t in relevant if _trade_hour(t, tz) not in hours]

    pnl_in = _net_pnl(in_range)
    pnl_out = _net_pnl(outside)
    supported = pnl_in > pnl_out
    keyword = constraints.time_keyword

    if supported:
        evidence = (
            f"Trades in the {keyword} window realized {format_money(pnl_in)}, "
            f"better than the {format_money(pnl_out)} realized at other times."
        )
    else:
        evidence = (
            f"Trades in the {keyword} window realized {format_money(pnl_in)}, "
            f"which does not beat the {format_money(pnl_out)} realized at other times."
        )

    span = f"{min(hours):02d}:00-{max(hours):02d}:59"
    return HypothesisResult(
        supported=supported,
        confidence=_clamp_confidence(len(in_range) / len(relevant) * 100),
        evidence=evidence,
        details=(
            f"Time-of-day breakdown: {len(in_range)} trades in the {keyword} window ({span}), "
            f"{len(outside)} at other times.{_action_note(constraints)}"
        ),
        constraints=constraints,
        pnl_in_range=pnl_in,
        pnl_outside_range=pnl_out,
    )


# ---------------------------------------------------------------------------
# Tracked hypothesis lifecycle
# ---------------------------------------------------------------------------


def record_validation(
    hypothesis: Hypothesis,
    result: ValidationResult,
    notes: str = "",
    on: date | None = None,
    now: datetime | None = None,
) -> Hypothesis:
    """Append one validation and advance the counters and status."""
    now = now or datetime.now(timezone.utc)
    on = on or now.date()
    is_valid = result == ValidationResult.VALID

    consecutive_valid = hypothesis.consecutive_valid + 1 if is_valid else 0
    consecutive_invalid = 0 if is_valid else hypothesis.consecutive_invalid + 1

    status = hypothesis.status
    if status == HypothesisStatus.ACTIVE:
        if consecutive_invalid >= INVALIDATED_AFTER:
            status = HypothesisStatus.INVALIDATED
        elif consecutive_valid >= VALIDATED_AFTER:
            status = HypothesisStatus.VALIDATED

    return replace(
        hypothesis,
        status=status,
        validations=hypothesis.validations + (HypothesisValidation(on, result, notes),),
        consecutive_valid=consecutive_valid,
        consecutive_invalid=consecutive_invalid,
        total_valid=hypothesis.total_valid + (1 if is_valid else 0),
        total_invalid=hypothesis.total_invalid + (0 if is_valid else 1),
        updated_at=now,
        last_validated_at=now,
    )


def archive(hypothesis: Hypothesis, now: datetime | None = None) -> Hypothesis:
    return replace(hypothesis, status=HypothesisStatus.ARCHIVED, updated_at=now or datetime.now(timezone.utc))
