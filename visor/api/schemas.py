from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Literal

from ..utils import parse_datetime

class User(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str
    email: str
    is_active: bool = True
    last_sync_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    has_bybit_credentials: Optional[bool] = None

class Portfolio(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str
    label: str = ""
    exchange: str = ""
    is_active: bool = True
    last_sync_at: Optional[datetime] = None
    api_key_masked: Optional[str] = None

    @field_validator("last_sync_at", mode="before")
    @classmethod
    def _utc_sync_time(cls, value):
        # Naive timestamps are UTC so sync times always compare.
        if value is None or value == "":
            return None
        parsed = parse_datetime(value)
        if parsed is None:
            raise ValueError(f"invalid last_sync_at: {value!r}")
        return parsed

class EquityPoint(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)
    date: str
    equity_usd: float = Field(default=0.0, alias="equityUSD")
    equity_btc: float = Field(default=0.0, alias="equityBTC")
    pnl_cumulative: float = Field(default=0.0, alias="pnlCumulative")

class DashboardSummary(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    current_equity_usd: float = Field(default=0.0, alias="currentEquityUSD")
    current_equity_btc: float = Field(default=0.0, alias="currentEquityBTC")
    total_return_usd: float = Field(default=0.0, alias="totalReturnUSD")
    total_return_btc: float = Field(default=0.0, alias="totalReturnBTC")
    today_pnl: float = Field(default=0.0, alias="todayPnL")
    week_pnl: float = Field(default=0.0, alias="weekPnL")
    month_pnl: float = Field(default=0.0, alias="monthPnL")
    open_positions: int = Field(default=0, alias="openPositions")
    total_positions: int = Field(default=0, alias="totalPositions")

class FundingPoint(BaseModel):
    model_config = ConfigDict(extra="ignore")
    date: str
    total_funding: float = 0.0
    funding_paid: float = 0.0
    funding_received: float = 0.0
    transaction_count: int = 0
    symbols: list[str] = Field(default_factory=list)

class FundingTimeseries(BaseModel):
    model_config = ConfigDict(extra="ignore")
    currency: str = "USDT"
    group_by: Literal["day", "week", "month"] = "day"
    data: list[FundingPoint] = Field(default_factory=list)
    summary: dict = Field(default_factory=dict)

class FundingSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")
    symbol: str
    currency: str = "USDT"
    today: float = 0.0
    week: float = 0.0
    month: float = 0.0
    total: float = 0.0

class FeeSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")
    maker_total: float = 0.0
    taker_total: float = 0.0
    maker_percent: float = 0.0
    taker_percent: float = 0.0

class TransactionSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")
    total_trades: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    total_fees: float = 0.0
    total_funding: float = 0.0
