"""Tests for report composition."""

from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from manager_digest.messages import WEEKLY_TEMPLATE, MessageComposer
from manager_digest.periods import ReportingWindow
from manager_digest.records import StatsResult

DHAKA = ZoneInfo("Asia/Dhaka")
WINDOW = ReportingWindow(
    start=datetime(2024, 5, 9, tzinfo=DHAKA),
    end=datetime(2024, 5, 15, 23, 59, 59, 999000, tzinfo=DHAKA),
)


@pytest.fixture
def composer():
    return MessageComposer(exchange_rate=Decimal("125.56"))


class TestFullReport:
    """Tests for the full report."""

    def test_layout(self, composer):
        stats = StatsResult(deposit_total=Decimal("1000"), withdraw_total=Decimal("200"))

        text = composer.compose_full_report("bKash", Decimal("5000"), stats, WINDOW)

        assert text.splitlines() == [
            "t+→$ (Daily Report)",
            "<b>bKash</b>",
            "09.05.2024 - 15.05.2024 (Last 7 Days)",
            "Payment (7d) = 1 000,00 BDT (7,97 USDT)",
            "Withdrawal (7d) = 200,00 BDT (1,59 USDT)",
            "Balance (full) = 5 000,00 BDT (39,82 USDT)",
        ]

    def test_negated_balance(self, composer):
        text = composer.compose_full_report(
            "bKash", Decimal("5000"), StatsResult(), WINDOW, negate_balance_display=True
        )

        assert "Balance (full) = -5 000,00 BDT (-39,82 USDT)" in text

    def test_negating_negative_balance_shows_positive(self, composer):
        text = composer.compose_full_report(
            "bKash", Decimal("-250"), StatsResult(), WINDOW, negate_balance_display=True
        )

        assert "Balance (full) = 250,00 BDT (1,99 USDT)" in text

    def test_weekly_template(self, composer):
        text = composer.compose_full_report(
            "Nagad", Decimal("0"), StatsResult(), WINDOW, template=WEEKLY_TEMPLATE
        )

        assert text.startswith("t+→$ (Weekly Report)\n")
        assert "(Sat - Fri)" in text
        assert "Payment (week) = 0,00 BDT (0,00 USDT)" in text

    def test_method_is_escaped(self, composer):
        text = composer.compose_full_report("A&B <x>", Decimal("0"), StatsResult(), WINDOW)

        assert "<b>A&amp;B &lt;x&gt;</b>" in text


class TestBalanceReport:
    """Tests for the balance-only report."""

    def test_layout(self, composer):
        text = composer.compose_balance_report(
            "bKash", Decimal("5000"), negate_balance_display=True
        )

        assert text == "t+→p\nbKash\nBalance (full) = -5 000,00 BDT (-39,82 USDT)"

    def test_unsigned(self, composer):
        text = composer.compose_balance_report("bKash", Decimal("1234567.891"))

        assert text.endswith("Balance (full) = 1 234 567,89 BDT (9 832,49 USDT)")


def test_rate_defaults_to_settings():
    assert MessageComposer().exchange_rate == Decimal("125.56")


def test_rate_must_be_positive():
    with pytest.raises(ValueError):
        MessageComposer(exchange_rate=Decimal("0"))
