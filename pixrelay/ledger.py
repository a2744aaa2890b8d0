"""
In-memory transaction ledger.

Orders are keyed by their own ``order_id``; a secondary index maps the
gateway's transaction id back to that key. None of the methods here await,
so each call is atomic with respect to the event loop. State is volatile and
does not survive a restart.
"""
from typing import Dict, Iterator, List, Optional, Tuple

import structlog

from pixrelay.models import Order

logger = structlog.get_logger(__name__)


class TransactionLedger:
    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._by_gateway_id: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: str) -> bool:
        return order_id in self._orders

    def put(self, order_id: str, order: Order) -> None:
        previous = self._orders.get(order_id)
        if previous is not None and previous.gateway_transaction_id:
            self._unindex(previous.gateway_transaction_id, order_id)

        self._orders[order_id] = order
        if order.gateway_transaction_id:
            self._index(order.gateway_transaction_id, order_id)

    def get(self, order_id: Optional[str]) -> Optional[Order]:
        if not order_id:
            return None
        return self._orders.get(order_id)

    def delete(self, order_id: str) -> Optional[Order]:
        order = self._orders.pop(order_id, None)
        if order is not None and order.gateway_transaction_id:
            self._unindex(order.gateway_transaction_id, order_id)
        return order

    def resolve_by_gateway_id(self, gateway_transaction_id: Optional[str]) -> Optional[str]:
        if not gateway_transaction_id:
            return None
        return self._by_gateway_id.get(gateway_transaction_id)

    def bind_gateway_id(self, order_id: str, gateway_transaction_id: str) -> None:
        """Point ``gateway_transaction_id`` at ``order_id``, dropping any old mapping."""
        order = self._orders.get(order_id)
        if order is None or order.gateway_transaction_id == gateway_transaction_id:
            return

        if order.gateway_transaction_id:
            self._unindex(order.gateway_transaction_id, order_id)
        order.gateway_transaction_id = gateway_transaction_id
        self._index(gateway_transaction_id, order_id)

    def items(self) -> List[Tuple[str, Order]]:
        # Snapshot, so callers may delete while iterating
        return list(self._orders.items())

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._orders))

    def _index(self, gateway_transaction_id: str, order_id: str) -> None:
        owner = self._by_gateway_id.get(gateway_transaction_id)
        if owner is not None and owner != order_id:
            logger.warning(
                "gateway_id_rebound",
                gateway_transaction_id=gateway_transaction_id,
                previous_order_id=owner,
                order_id=order_id,
            )
            stale = self._orders.get(owner)
            if stale is not None:
                stale.gateway_transaction_id = None
        self._by_gateway_id[gateway_transaction_id] = order_id

    def _unindex(self, gateway_transaction_id: str, order_id: str) -> None:
        if self._by_gateway_id.get(gateway_transaction_id) == order_id:
            del self._by_gateway_id[gateway_transaction_id]
