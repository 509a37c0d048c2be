"""Metric registry and extraction.

Fund records arrive in two naming conventions: live fields
(`one_year_return`, `sharpe_ratio`, ...) and legacy import columns
(`1 Year`, `Sharpe Ratio`, ...). `FundRecord.from_mapping` and
`extract_metrics` normalise both into one canonical shape up front so the
rest of the engine only ever sees `FundRecord` and `CanonicalMetrics`.

How to add a metric:
1. Add the key to METRIC_KEYS, a label in METRIC_LABELS and a position in METRIC_ORDER.
2. Map its live field in LIVE_FIELDS and its import aliases in LEGACY_FIELDS.
3. Give it a DEFAULT_WEIGHTS entry (0 keeps it inert until a profile overrides it).
"""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass, field, fields
from decimal import Decimal
from typing import Any, Iterator, Mapping, Optional

import numpy as np


METRIC_KEYS: tuple[str, ...] = (
    "ytd",
    "one_year",
    "three_year",
    "five_year",
    "ten_year",
    "sharpe_ratio_3y",
    "std_dev_3y",
    "std_dev_5y",
    "up_capture_3y",
    "down_capture_3y",
    "alpha_5y",
    "expense_ratio",
    "manager_tenure",
    "one_year_delta_vs_bench",
)

METRIC_LABELS: dict[str, str] = {
    "ytd": "YTD Return",
    "one_year": "1-Year Return",
    "three_year": "3-Year Return",
    "five_year": "5-Year Return",
    "ten_year": "10-Year Return",
    "sharpe_ratio_3y": "3Y Sharpe Ratio",
    "std_dev_3y": "3Y Std Deviation",
    "std_dev_5y": "5Y Std Deviation",
    "up_capture_3y": "3Y Up Capture",
    "down_capture_3y": "3Y Down Capture",
    "alpha_5y": "5Y Alpha",
    "expense_ratio": "Expense Ratio",
    "manager_tenure": "Manager Tenure",
    "one_year_delta_vs_bench": "1Y vs Benchmark (delta)",
}

# Display order for reports
METRIC_ORDER: tuple[str, ...] = (
    "ytd",
    "one_year",
    "one_year_delta_vs_bench",
    "three_year",
    "five_year",
    "ten_year",
    "sharpe_ratio_3y",
    "std_dev_3y",
    "std_dev_5y",
    "up_capture_3y",
    "down_capture_3y",
    "alpha_5y",
    "expense_ratio",
    "manager_tenure",
)

# Built-in weights. Negative weight = lower is better.
DEFAULT_WEIGHTS: dict[str, float] = {
    "ytd": 0.025,
    "one_year": 0.05,
    "three_year": 0.10,
    "five_year": 0.15,
    "ten_year": 0.10,
    "sharpe_ratio_3y": 0.10,
    "std_dev_3y": -0.075,
    "std_dev_5y": -0.125,
    "up_capture_3y": 0.075,
    "down_capture_3y": -0.10,
    "alpha_5y": 0.05,
    "expense_ratio": -0.025,
    "manager_tenure": 0.025,
    "one_year_delta_vs_bench": 0.0,
}

LIVE_FIELDS: dict[str, str] = {
    "ytd": "ytd_return",
    "one_year": "one_year_return",
    "three_year": "three_year_return",
    "five_year": "five_year_return",
    "ten_year": "ten_year_return",
    "sharpe_ratio_3y": "sharpe_ratio",
    "std_dev_3y": "standard_deviation_3y",
    "std_dev_5y": "standard_deviation_5y",
    "up_capture_3y": "up_capture_ratio",
    "down_capture_3y": "down_capture_ratio",
    "alpha_5y": "alpha",
    "expense_ratio": "expense_ratio",
    "manager_tenure": "manager_tenure",
}

LEGACY_FIELDS: dict[str, tuple[str, ...]] = {
    "ytd": ("YTD",),
    "one_year": ("1 Year",),
    "three_year": ("3 Year",),
    "five_year": ("5 Year",),
    "ten_year": ("10 Year",),
    "sharpe_ratio_3y": ("Sharpe Ratio", "Sharpe Ratio - 3 Year"),
    "std_dev_3y": ("StdDev3Y", "Standard Deviation - 3 Year"),
    "std_dev_5y": ("StdDev5Y", "Standard Deviation - 5 Year", "Standard Deviation"),
    "up_capture_3y": (
        "Up Capture Ratio",
        "Up Capture",
        "Up Capture Ratio (Morningstar Standard) - 3 Year",
    ),
    "down_capture_3y": (
        "Down Capture Ratio",
        "Down Capture",
        "Down Capture Ratio (Morningstar Standard) - 3 Year",
    ),
    "alpha_5y": ("Alpha", "Alpha (Asset Class) - 5 Year"),
    "expense_ratio": ("Net Expense Ratio", "Net Exp Ratio (%)"),
    "manager_tenure": ("Manager Tenure", "Longest Manager Tenure (Years)"),
}

NOT_AVAILABLE_TOKENS = frozenset({"", "n/a", "n/a n/a", "na", "-", "--", "null", "none"})

_NUMERIC_NOISE = re.compile(r"[%,$\s]")


def is_higher_better(metric: str) -> bool:
    """Direction implied by the built-in weight sign."""
    return DEFAULT_WEIGHTS.get(metric, 0.0) >= 0


def clean_symbol(symbol: Any) -> str:
    """Normalise a ticker: upper-case, alphanumerics only."""
    if symbol is None:
        return ""
    return re.sub(r"[^A-Z0-9]", "", str(symbol).upper().strip())


def parse_metric_value(value: Any) -> Optional[float]:
    """
    Parse a raw metric cell into a float.

    Tolerates percent signs, thousands separators and currency symbols.
    Sentinel tokens ("N/A", "--", ...), malformed strings and non-finite
    numbers resolve to None; this function never raises.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float, Decimal, np.number)):
        number = float(value)
        return number if math.isfinite(number) else None

    if isinstance(value, str):
        if value.strip().lower() in NOT_AVAILABLE_TOKENS:
            return None
        cleaned = _NUMERIC_NOISE.sub("", value)
        try:
            number = float(cleaned)
        except ValueError:
            return None
        return number if math.isfinite(number) else None

    return None


def _first_present(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "y", "1"}
    return bool(value)


@dataclass(frozen=True)
class FundRecord:
    """Identity, classification and role flags of one input record."""

    ticker: str
    name: str | None = None
    asset_class: str = "Unknown"
    is_benchmark: bool = False
    is_recommended: bool = False
    benchmark_ticker: str | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> FundRecord:
        """Build from a flat record in either naming convention."""
        ticker = clean_symbol(_first_present(raw, "ticker", "symbol", "Symbol", "Ticker"))
        name = _first_present(raw, "name", "fund_name", "Fund Name", "Name")
        asset_class = _first_present(raw, "asset_class_name", "asset_class", "Asset Class")
        bench = _first_present(raw, "primary_benchmark", "benchmark_ticker")
        return cls(
            ticker=ticker,
            name=str(name) if name is not None else None,
            asset_class=str(asset_class).strip() if asset_class is not None else "Unknown",
            is_benchmark=_as_bool(_first_present(raw, "is_benchmark", "isBenchmark")),
            is_recommended=_as_bool(_first_present(raw, "is_recommended", "isRecommended")),
            benchmark_ticker=clean_symbol(bench) or None,
            raw=raw,
        )


@dataclass(frozen=True)
class CanonicalMetrics:
    """Fixed, ordered set of nullable metric values."""

    ytd: Optional[float] = None
    one_year: Optional[float] = None
    three_year: Optional[float] = None
    five_year: Optional[float] = None
    ten_year: Optional[float] = None
    sharpe_ratio_3y: Optional[float] = None
    std_dev_3y: Optional[float] = None
    std_dev_5y: Optional[float] = None
    up_capture_3y: Optional[float] = None
    down_capture_3y: Optional[float] = None
    alpha_5y: Optional[float] = None
    expense_ratio: Optional[float] = None
    manager_tenure: Optional[float] = None
    one_year_delta_vs_bench: Optional[float] = None

    def get(self, metric: str) -> Optional[float]:
        return getattr(self, metric, None)

    def items(self) -> Iterator[tuple[str, Optional[float]]]:
        for f in fields(self):
            yield f.name, getattr(self, f.name)

    @property
    def present_count(self) -> int:
        return sum(1 for _, v in self.items() if v is not None)

    def to_dict(self) -> dict[str, Optional[float]]:
        return asdict(self)


def _extract_value(raw: Mapping[str, Any], metric: str) -> Optional[float]:
    """Live field first, then legacy aliases; first parseable value wins."""
    candidates = [LIVE_FIELDS[metric], *LEGACY_FIELDS.get(metric, ())]
    for key in candidates:
        parsed = parse_metric_value(raw.get(key))
        if parsed is not None:
            return parsed
    return None


def _bench_one_year(
    fund: FundRecord,
    bench_lookup: Mapping[str, FundRecord] | None,
) -> Optional[float]:
    if not bench_lookup or not fund.benchmark_ticker:
        return None
    bench = bench_lookup.get(fund.benchmark_ticker)
    if bench is None:
        return None
    return _extract_value(bench.raw, "one_year")


def extract_metrics(
    record: FundRecord | Mapping[str, Any],
    bench_lookup: Mapping[str, FundRecord] | None = None,
    *,
    bench_delta_enabled: bool = False,
) -> CanonicalMetrics:
    """
    Map a record onto the canonical metric set.

    Args:
        record: FundRecord or raw mapping
        bench_lookup: cleaned ticker -> FundRecord, used for the benchmark delta
        bench_delta_enabled: derive one_year_delta_vs_bench when possible

    Returns:
        CanonicalMetrics with every key present (value or None)
    """
    fund = record if isinstance(record, FundRecord) else FundRecord.from_mapping(record)
    raw = fund.raw

    values = {metric: _extract_value(raw, metric) for metric in LIVE_FIELDS}

    delta = None
    if bench_delta_enabled:
        bench_1y = _bench_one_year(fund, bench_lookup)
        if bench_1y is not None and values["one_year"] is not None:
            delta = values["one_year"] - bench_1y

    return CanonicalMetrics(**values, one_year_delta_vs_bench=delta)
