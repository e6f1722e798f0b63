"""Input preparation for the risk engine: cash-flow history, classification, hashing."""

from lp_engine.data.cashflows import (
    build_quarterly_history,
    latest_period,
    parse_quarter_label,
    quarter_label,
    quarter_of,
    split_series,
)
from lp_engine.data.classification import (
    classify_holdings,
    infer_fund_asset_class,
    map_investment_type,
)
from lp_engine.data.hashing import snapshot_hash

__all__ = [
    "build_quarterly_history",
    "latest_period",
    "parse_quarter_label",
    "quarter_label",
    "quarter_of",
    "split_series",
    "classify_holdings",
    "infer_fund_asset_class",
    "map_investment_type",
    "snapshot_hash",
]
