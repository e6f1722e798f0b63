"""
Shared test fixtures for the portfolio risk engine test suite.

Provides consistent test data across all test modules:
- The two-fund reference portfolio (Acme / Beta)
- A diversified portfolio of funds and direct investments
- Dated capital-call and distribution events
- A fixed reporting date
"""

from datetime import date

import numpy as np
import pytest

from lp_engine.models import (
    CashFlowEvent,
    CashFlowType,
    Holding,
    HoldingKind,
    PolicyConfig,
    Scenario,
)


@pytest.fixture
def as_of():
    """Reporting date used across tests (end of Q4 2024)."""
    return date(2024, 12, 31)


@pytest.fixture
def two_fund_holdings():
    """Reference two-fund portfolio.

    Fund A: commitment 10M, paid-in 6M, NAV 9M (Acme, Buyout)
    Fund B: commitment 5M, paid-in 5M, NAV 4M (Beta, Credit)
    """
    return [
        Holding(
            id="fund-a",
            name="Fund A",
            manager="Acme",
            domicile="North America",
            currency="USD",
            asset_class="Buyout",
            vintage=2021,
            commitment=10_000_000,
            paid_in=6_000_000,
            current_value=9_000_000,
        ),
        Holding(
            id="fund-b",
            name="Fund B",
            manager="Beta",
            domicile="Europe",
            currency="EUR",
            asset_class="Credit",
            vintage=2019,
            commitment=5_000_000,
            paid_in=5_000_000,
            current_value=4_000_000,
        ),
    ]


@pytest.fixture
def diversified_holdings():
    """Six funds and two direct investments across strategies and regions."""
    return [
        Holding(
            id="f1", name="Northwind Venture Fund III", manager="Northwind",
            domicile="North America", currency="USD", asset_class="Venture Capital",
            sector="Technology", vintage=2021, commitment=5_000_000, paid_in=3_500_000,
            current_value=4_800_000, tvpi=1.6, dpi=0.3,
        ),
        Holding(
            id="f2", name="Harbor Buyout Partners IV", manager="Harbor",
            domicile="North America", currency="USD", asset_class="Private Equity",
            sector="Industrials", vintage=2022, commitment=6_000_000, paid_in=2_400_000,
            current_value=2_900_000, tvpi=1.2, dpi=0.1,
        ),
        Holding(
            id="f3", name="Alpine Growth Fund II", manager="Alpine",
            domicile="Europe", currency="EUR", asset_class="Growth Equity",
            sector="Healthcare", vintage=2023, commitment=4_000_000, paid_in=1_000_000,
            current_value=1_100_000, tvpi=1.1,
        ),
        Holding(
            id="f4", name="Sakura Private Equity I", manager="Sakura",
            domicile="Asia", currency="JPY", asset_class="Private Equity",
            sector="Consumer", vintage=2020, commitment=3_000_000, paid_in=2_900_000,
            current_value=3_600_000, tvpi=1.9, dpi=0.8,
        ),
        Holding(
            id="f5", name="Meridian Credit Opportunities", manager="Meridian",
            domicile="Europe", currency="EUR", asset_class="Private Credit",
            sector="Financials", vintage=2024, commitment=2_000_000, paid_in=500_000,
            current_value=520_000,
        ),
        Holding(
            id="f6", name="Harbor Venture Seed", manager="Harbor",
            domicile="North America", currency="USD", asset_class=None,
            sector="Technology", vintage=2025, commitment=1_500_000, paid_in=0,
            current_value=0,
        ),
        Holding(
            id="d1", name="Acorn Robotics", manager=None, domicile="North America",
            currency="USD", asset_class=None, sector="Technology", vintage=2023,
            commitment=750_000, paid_in=750_000, current_value=900_000,
            investment_type="PRIVATE_EQUITY", kind=HoldingKind.DIRECT,
        ),
        Holding(
            id="d2", name="Bridge Lending Note", manager=None, domicile=None,
            currency="USD", asset_class=None, sector=None, vintage=None,
            commitment=500_000, paid_in=500_000, current_value=480_000,
            investment_type="PRIVATE_CREDIT", kind=HoldingKind.DIRECT,
        ),
    ]


@pytest.fixture
def sample_events():
    """Capital calls and distributions across 2023-2024 plus one future call."""
    def call(day, amount):
        return CashFlowEvent(type=CashFlowType.CAPITAL_CALL, event_date=day, amount=amount)

    def dist(day, amount):
        return CashFlowEvent(type=CashFlowType.DISTRIBUTION, event_date=day, amount=amount)

    return [
        call(date(2023, 2, 15), 400_000),
        call(date(2023, 3, 20), 200_000),
        dist(date(2023, 5, 10), 150_000),
        call(date(2023, 8, 1), 500_000),
        call(date(2024, 1, 15), 300_000),
        dist(date(2024, 4, 30), 250_000),
        CashFlowEvent(
            type=CashFlowType.NEW_HOLDING, event_date=date(2024, 6, 1), amount=750_000
        ),
        dist(date(2024, 11, 20), 400_000),
        call(date(2025, 3, 1), 999_999),
    ]


@pytest.fixture
def default_policy():
    return PolicyConfig()


@pytest.fixture
def custom_scenario():
    return Scenario(
        id="rate-shock",
        name="Rate Shock",
        nav_shock_pct=-0.15,
        capital_call_multiplier=1.4,
        distribution_multiplier=0.6,
        custom=True,
    )


@pytest.fixture
def rng():
    """Deterministically seeded generator."""
    return np.random.default_rng(42)
