"""Report text composition."""

import html
from dataclasses import dataclass
from decimal import Decimal

from manager_digest.config import get_settings
from manager_digest.formatting import format_date, format_money
from manager_digest.periods import ReportingWindow
from manager_digest.records import StatsResult


@dataclass(frozen=True)
class ReportTemplate:
    """Wording for a full report.

    ``period_label`` follows the date range, ``short_label`` tags the
    payment and withdrawal lines.
    """

    title: str
    period_label: str
    short_label: str


DAILY_TEMPLATE = ReportTemplate(
    title="t+→$ (Daily Report)", period_label="Last 7 Days", short_label="7d"
)
WEEKLY_TEMPLATE = ReportTemplate(
    title="t+→$ (Weekly Report)", period_label="Sat - Fri", short_label="week"
)
BALANCE_TITLE = "t+→p"


class MessageComposer:
    """Builds report messages with amounts shown in BDT and USDT."""

    def __init__(self, exchange_rate: Decimal | None = None):
        rate = exchange_rate if exchange_rate is not None else get_settings().usdt_rate
        if rate <= 0:
            raise ValueError("Exchange rate must be positive")
        self._rate = Decimal(rate)

    @property
    def exchange_rate(self) -> Decimal:
        return self._rate

    def to_usdt(self, amount_bdt: Decimal) -> Decimal:
        return amount_bdt / self._rate

    def _dual(self, amount_bdt: Decimal) -> str:
        """``"1 000,00 BDT (7,97 USDT)"``"""
        return f"{format_money(amount_bdt)} BDT ({format_money(self.to_usdt(amount_bdt))} USDT)"

    def _balance_line(self, balance: Decimal, negate: bool) -> str:
        shown = -balance if negate else balance
        return f"Balance (full) = {self._dual(shown)}"

    def compose_full_report(
        self,
        method: str,
        balance: Decimal,
        stats: StatsResult,
        window: ReportingWindow,
        template: ReportTemplate = DAILY_TEMPLATE,
        negate_balance_display: bool = False,
    ) -> str:
        """Payment, withdrawal and balance figures for a window."""
        lines = [
            template.title,
            f"<b>{html.escape(method)}</b>",
            f"{format_date(window.start)} - {format_date(window.end)} ({template.period_label})",
            f"Payment ({template.short_label}) = {self._dual(stats.deposit_total)}",
            f"Withdrawal ({template.short_label}) = {self._dual(stats.withdraw_total)}",
            self._balance_line(balance, negate_balance_display),
        ]
        return "\n".join(lines) + "\n"

    def compose_balance_report(
        self,
        method: str,
        balance: Decimal,
        negate_balance_display: bool = False,
    ) -> str:
        """Method label and balance only."""
        return "\n".join(
            [
                BALANCE_TITLE,
                html.escape(method),
                self._balance_line(balance, negate_balance_display),
            ]
        )
