"""Approved deposit/withdrawal totals per payment method."""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from manager_digest.clients.firestore import DocumentStore
from manager_digest.config import get_settings
from manager_digest.periods import ReportingWindow
from manager_digest.records import (
    APPROVED_STATUS,
    StatsResult,
    TransactionDirection,
    TransactionRecord,
)

logger = structlog.get_logger(__name__)


class StatsAggregator:
    """Sums approved transaction amounts inside a reporting window.

    Each call issues one query per collection. A failed query is logged
    and contributes nothing; the other collection is still summed.

    Records without a usable ``createdAt`` count as created "now", so they
    land in any window that ends at or after the current instant.
    """

    def __init__(
        self,
        store: DocumentStore,
        deposits_collection: str | None = None,
        withdrawals_collection: str | None = None,
        range_pushdown: bool | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        settings = get_settings()
        self._store = store
        self._collections = {
            TransactionDirection.DEPOSIT: deposits_collection or settings.deposits_collection,
            TransactionDirection.WITHDRAWAL: (
                withdrawals_collection or settings.withdrawals_collection
            ),
        }
        self._range_pushdown = (
            settings.stats_range_pushdown if range_pushdown is None else range_pushdown
        )
        self._clock = clock or (lambda: datetime.now(UTC))
        self._logger = logger.bind(component="stats_aggregator")

    async def aggregate(self, method: str, start: datetime, end: datetime) -> StatsResult:
        """Total approved deposits and withdrawals for ``method`` in [start, end].

        Raises:
            ValueError: If ``method`` is empty or ``start`` is after ``end``.
        """
        if not method:
            raise ValueError("method must be a non-empty string")
        window = ReportingWindow(start=start, end=end)

        stats = StatsResult()
        for direction in TransactionDirection:
            await self._accumulate(stats, direction, method, window)

        self._logger.debug(
            "stats_aggregated",
            method=method,
            deposit_total=str(stats.deposit_total),
            withdraw_total=str(stats.withdraw_total),
        )
        return stats

    async def _accumulate(
        self,
        stats: StatsResult,
        direction: TransactionDirection,
        method: str,
        window: ReportingWindow,
    ) -> None:
        collection = self._collections[direction]
        try:
            documents = await self._store.query(
                collection,
                {"method": method, "status": APPROVED_STATUS},
                created_between=(window.start, window.end) if self._range_pushdown else None,
            )
        except Exception as e:
            self._logger.error(
                "stats_query_failed",
                collection=collection,
                method=method,
                error=str(e),
            )
            return

        now = self._clock()
        counted = 0
        for data in documents:
            record = TransactionRecord.from_document(data)
            if window.contains(record.created_at or now):
                stats.add(direction, record.amount)
                counted += 1

        self._logger.debug(
            "collection_summed",
            collection=collection,
            method=method,
            scanned=len(documents),
            counted=counted,
        )
