from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from ..common.errors import ApiError, DeserializationError, InvalidParameterError
from ..common.logging import get_logger
from ..common.schema import NewOrderRequest, Order, UserTrade
from ..rest.http import HttpClient

log = get_logger("trading")

MAX_BATCH_ORDERS = 5


def _order_ref(order_id: Optional[int], client_order_id: Optional[str]) -> Dict[str, Any]:
    if order_id is None and not client_order_id:
        raise InvalidParameterError("either order_id or client_order_id is required")
    return {"orderId": order_id, "origClientOrderId": client_order_id}


class TradingApi:
    def __init__(self, http: HttpClient) -> None:
        self.http = http

    async def new_order(self, order: NewOrderRequest) -> Order:
        params = order.to_params()
        log.info("order_submit", symbol=order.symbol, side=order.side.value, type=order.order_type.value)
        return await self.http.signed_post("/fapi/v1/order", params, model=Order)

    async def cancel_order(
        self, symbol: str, *, order_id: Optional[int] = None, client_order_id: Optional[str] = None
    ) -> Order:
        params = {"symbol": symbol, **_order_ref(order_id, client_order_id)}
        return await self.http.signed_delete("/fapi/v1/order", params, model=Order)

    async def cancel_all_orders(self, symbol: str) -> None:
        # returns {"code": 200, "msg": "The operation of cancel all open order is done."}
        await self.http.signed_delete("/fapi/v1/allOpenOrders", {"symbol": symbol})

    async def query_order(
        self, symbol: str, *, order_id: Optional[int] = None, client_order_id: Optional[str] = None
    ) -> Order:
        params = {"symbol": symbol, **_order_ref(order_id, client_order_id)}
        return await self.http.signed_get("/fapi/v1/order", params, model=Order)

    async def all_orders(
        self,
        symbol: str,
        *,
        order_id: Optional[int] = None,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Order]:
        params = {"symbol": symbol, "orderId": order_id, "startTime": start_time, "endTime": end_time, "limit": limit}
        return await self.http.signed_get("/fapi/v1/allOrders", params, model=List[Order])

    async def open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        return await self.http.signed_get("/fapi/v1/openOrders", {"symbol": symbol}, model=List[Order])

    async def batch_orders(self, orders: Sequence[NewOrderRequest]) -> List[Union[Order, ApiError]]:
        """Place up to five orders in one call.

        The exchange answers per order: each slot is either the placed order or
        the ``{code, msg}`` rejection for that order, returned as an ``ApiError``.
        """
        if not orders:
            raise InvalidParameterError("batch_orders needs at least one order")
        if len(orders) > MAX_BATCH_ORDERS:
            raise InvalidParameterError(f"batch_orders accepts at most {MAX_BATCH_ORDERS} orders")
        payload = json.dumps([o.to_params() for o in orders], separators=(",", ":"))
        data = await self.http.signed_post("/fapi/v1/batchOrders", {"batchOrders": payload})
        if not isinstance(data, list):
            raise DeserializationError("batchOrders response is not an array")
        results: List[Union[Order, ApiError]] = []
        for item in data:
            if isinstance(item, dict) and isinstance(item.get("code"), int) and "orderId" not in item:
                results.append(ApiError(item["code"], str(item.get("msg", ""))))
                continue
            try:
                results.append(Order.model_validate(item))
            except ValidationError as e:
                raise DeserializationError(f"unexpected batch order shape: {e}") from e
        return results

    async def user_trades(
        self,
        symbol: str,
        *,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        from_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[UserTrade]:
        params = {"symbol": symbol, "startTime": start_time, "endTime": end_time, "fromId": from_id, "limit": limit}
        return await self.http.signed_get("/fapi/v1/userTrades", params, model=List[UserTrade])
