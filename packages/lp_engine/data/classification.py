"""Asset-class classification for holdings missing one.

Funds are classified by keywords found in their name or manager; direct
investments by their investment type.  A fund with no keyword match keeps
``asset_class=None`` so the exposure aggregator reports it under its
sentinel label rather than inventing a strategy.
"""

from __future__ import annotations

from typing import Iterable

import structlog

from lp_engine.models import Holding, HoldingKind

logger = structlog.get_logger(__name__)


# Checked in order; the first label with a matching keyword wins.
FUND_ASSET_CLASS_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("Venture Capital", ("venture", "tech", "innovation", "startup")),
    ("Growth Equity", ("growth", "expansion", "scale")),
    ("Private Credit", ("credit", "debt", "mezzanine", "direct lending")),
    ("Infrastructure", ("infrastructure", "transport", "energy", "renewable")),
    ("Real Estate", ("real estate", "property", "urban", "residential", "logistics")),
    ("Buyout", ("buyout", "capital partners", "equity partners")),
]

INVESTMENT_TYPE_ASSET_CLASS: dict[str, str] = {
    "PRIVATE_EQUITY": "Private Equity",
    "PRIVATE_DEBT": "Private Credit",
    "PRIVATE_CREDIT": "Private Credit",
    "PUBLIC_EQUITY": "Public Equity",
    "REAL_ESTATE": "Real Estate",
    "REAL_ASSETS": "Real Assets",
    "CASH": "Cash & Equivalents",
}

DIRECT_INVESTMENT_DEFAULT = "Direct Investments"


def infer_fund_asset_class(name: str | None, manager: str | None) -> str | None:
    """Infer a fund's strategy from keywords in its name and manager."""
    source = f"{name or ''} {manager or ''}".lower()
    for label, keywords in FUND_ASSET_CLASS_KEYWORDS:
        if any(keyword in source for keyword in keywords):
            return label
    return None


def map_investment_type(investment_type: str | None) -> str:
    """Map a direct-investment type code to an asset class label."""
    if not investment_type:
        return DIRECT_INVESTMENT_DEFAULT
    return INVESTMENT_TYPE_ASSET_CLASS.get(investment_type.upper(), DIRECT_INVESTMENT_DEFAULT)


def classify_holdings(holdings: Iterable[Holding]) -> list[Holding]:
    """Return copies of *holdings* with missing asset classes filled in.

    Holdings that already carry an asset class are returned unchanged.
    """
    classified: list[Holding] = []
    inferred = 0

    for holding in holdings:
        if holding.asset_class and holding.asset_class.strip():
            classified.append(holding)
            continue

        if holding.kind == HoldingKind.DIRECT:
            asset_class: str | None = map_investment_type(holding.investment_type)
        else:
            asset_class = infer_fund_asset_class(holding.name, holding.manager)

        if asset_class is None:
            classified.append(holding)
            continue

        inferred += 1
        classified.append(holding.model_copy(update={"asset_class": asset_class}))

    if inferred:
        logger.info("classify_holdings: asset classes inferred", count=inferred)

    return classified
