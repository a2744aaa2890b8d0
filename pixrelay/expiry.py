"""
Time-based expiry of ledger orders.

Two paths share the thresholds from ``Settings``:

* ``check_order_status`` flips a pending order to ``expired`` when it is read
  after ``status_expiry``.
* ``ExpirySweeper`` runs every ``cleanup_interval`` and removes every order
  older than ``transaction_lifetime``, whatever its status. Pending orders are
  marked ``expired`` before removal.

``status_expiry`` is never longer than ``transaction_lifetime``, so a pending
order always reads as expired before the sweeper can remove it.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import structlog

from pixrelay.ledger import TransactionLedger
from pixrelay.models import OrderStatus, utcnow

logger = structlog.get_logger(__name__)


def check_order_status(
    ledger: TransactionLedger,
    order_id: str,
    status_expiry: timedelta,
    now: Optional[datetime] = None,
) -> str:
    order = ledger.get(order_id)
    if order is None:
        logger.warning("status_query_not_found", order_id=order_id)
        return OrderStatus.NOT_FOUND_OR_EXPIRED.value

    now = now or utcnow()
    if order.status == OrderStatus.PENDING.value and order.age_at(now) > status_expiry:
        order.status = OrderStatus.EXPIRED.value
        logger.info("order_expired_on_read", order_id=order_id)

    logger.info("status_query", order_id=order_id, status=order.status)
    return order.status


class ExpirySweeper:
    def __init__(
        self,
        ledger: TransactionLedger,
        lifetime: timedelta,
        interval: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ledger = ledger
        self.lifetime = lifetime
        self.interval = interval
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self) -> List[str]:
        """Run one pass and return the removed order ids."""
        now = self.clock()
        removed = []
        for order_id, order in self.ledger.items():
            age = order.age_at(now)
            if age <= self.lifetime:
                continue

            if order.status == OrderStatus.PENDING.value:
                order.status = OrderStatus.EXPIRED.value
                logger.info("order_expired_by_sweeper", order_id=order_id)

            self.ledger.delete(order_id)
            removed.append(order_id)
            logger.info(
                "order_removed",
                order_id=order_id,
                status=order.status,
                age_minutes=int(age.total_seconds() // 60),
            )
        return removed

    async def run(self) -> None:
        seconds = self.interval.total_seconds()
        logger.info("sweeper_started", interval_seconds=seconds)
        while True:
            await asyncio.sleep(seconds)
            try:
                self.sweep()
            except Exception:
                logger.exception("sweeper_pass_failed")

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("sweeper_stopped")
