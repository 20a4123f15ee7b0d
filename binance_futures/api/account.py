from __future__ import annotations

from typing import List, Optional

from ..common.errors import InvalidParameterError
from ..common.schema import (
    AccountInfo,
    AdlQuantile,
    ApiTradingStatus,
    Balance,
    CodeMessage,
    CommissionRate,
    Income,
    IncomeType,
    LeverageBracket,
    LeverageChange,
    MarginType,
    Order,
    PositionMarginChange,
    PositionMarginHistory,
    PositionRisk,
    PositionSide,
)
from ..rest.http import HttpClient
from .market import validate_list

MAX_LEVERAGE = 125

# positionMargin "type": 1 adds margin, 2 reduces it
ADD_MARGIN = 1
REDUCE_MARGIN = 2


class AccountApi:
    def __init__(self, http: HttpClient) -> None:
        self.http = http

    async def account_info(self) -> AccountInfo:
        return await self.http.signed_get("/fapi/v2/account", model=AccountInfo)

    async def balance(self) -> List[Balance]:
        return await self.http.signed_get("/fapi/v2/balance", model=List[Balance])

    async def position_risk(self, symbol: Optional[str] = None) -> List[PositionRisk]:
        return await self.http.signed_get("/fapi/v2/positionRisk", {"symbol": symbol}, model=List[PositionRisk])

    async def income_history(
        self,
        *,
        symbol: Optional[str] = None,
        income_type: Optional[IncomeType] = None,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Income]:
        params = {
            "symbol": symbol,
            "incomeType": income_type,
            "startTime": start_time,
            "endTime": end_time,
            "limit": limit,
        }
        return await self.http.signed_get("/fapi/v1/income", params, model=List[Income])

    async def leverage_bracket(self, symbol: Optional[str] = None) -> List[LeverageBracket]:
        data = await self.http.signed_get("/fapi/v1/leverageBracket", {"symbol": symbol})
        return validate_list(LeverageBracket, data)

    async def adl_quantile(self, symbol: Optional[str] = None) -> List[AdlQuantile]:
        data = await self.http.signed_get("/fapi/v1/adlQuantile", {"symbol": symbol})
        return validate_list(AdlQuantile, data)

    async def force_orders(
        self,
        *,
        symbol: Optional[str] = None,
        auto_close_type: Optional[str] = None,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Order]:
        params = {
            "symbol": symbol,
            "autoCloseType": auto_close_type,
            "startTime": start_time,
            "endTime": end_time,
            "limit": limit,
        }
        return await self.http.signed_get("/fapi/v1/forceOrders", params, model=List[Order])

    async def api_trading_status(self, symbol: Optional[str] = None) -> ApiTradingStatus:
        return await self.http.signed_get("/fapi/v1/apiTradingStatus", {"symbol": symbol}, model=ApiTradingStatus)

    async def commission_rate(self, symbol: str) -> CommissionRate:
        return await self.http.signed_get("/fapi/v1/commissionRate", {"symbol": symbol}, model=CommissionRate)

    async def change_leverage(self, symbol: str, leverage: int) -> LeverageChange:
        if not 1 <= leverage <= MAX_LEVERAGE:
            raise InvalidParameterError(f"leverage must be between 1 and {MAX_LEVERAGE}")
        return await self.http.signed_post(
            "/fapi/v1/leverage", {"symbol": symbol, "leverage": leverage}, model=LeverageChange
        )

    async def change_margin_type(self, symbol: str, margin_type: MarginType) -> CodeMessage:
        return await self.http.signed_post(
            "/fapi/v1/marginType", {"symbol": symbol, "marginType": margin_type}, model=CodeMessage
        )

    async def modify_position_margin(
        self,
        symbol: str,
        amount: float,
        margin_type: int,
        position_side: Optional[PositionSide] = None,
    ) -> PositionMarginChange:
        if margin_type not in (ADD_MARGIN, REDUCE_MARGIN):
            raise InvalidParameterError("margin_type must be 1 (add) or 2 (reduce)")
        if amount <= 0:
            raise InvalidParameterError("amount must be positive")
        params = {"symbol": symbol, "amount": amount, "type": margin_type, "positionSide": position_side}
        return await self.http.signed_post("/fapi/v1/positionMargin", params, model=PositionMarginChange)

    async def position_margin_history(
        self,
        symbol: str,
        *,
        margin_type: Optional[int] = None,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[PositionMarginHistory]:
        params = {"symbol": symbol, "type": margin_type, "startTime": start_time, "endTime": end_time, "limit": limit}
        return await self.http.signed_get(
            "/fapi/v1/positionMargin/history", params, model=List[PositionMarginHistory]
        )
