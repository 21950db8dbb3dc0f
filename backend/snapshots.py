"""
Save Snapshots

Pydantic models describing the plain, JSON-safe snapshot of every
restorable component. Keys are camelCase so saves stay compatible with
browser-side tooling; Python code uses the snake_case field names.

Restore is lenient: a field that fails validation is dropped to None
(meaning "use the component's default") and a warning is logged, so one
corrupt value never prevents the rest of a save from loading.
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeFloat,
    NonNegativeInt,
    PlainSerializer,
    PositiveInt,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
)

logger = logging.getLogger(__name__)


def _assume_utc(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=timezone.utc)


def to_iso(moment: datetime) -> str:
    """Format as UTC ISO-8601 with millisecond precision, e.g. 1970-01-01T00:00:00.000Z."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


Timestamp = Annotated[datetime, AfterValidator(_assume_utc), PlainSerializer(to_iso, return_type=str)]


class Snapshot(BaseModel):
    """Base for all snapshot models."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("*", mode="wrap")
    @classmethod
    def _drop_invalid_field(cls, value: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo) -> Any:
        if value is None:
            return None
        try:
            return handler(value)
        except ValidationError as e:
            logger.warning(
                f"{cls.__name__}.{info.field_name}: ignoring invalid saved value {value!r} "
                f"({e.error_count()} error(s)); default will be used"
            )
            return None

    @classmethod
    def load(cls, data: Any) -> Optional["Snapshot"]:
        """Validate raw saved data; returns None when there is nothing usable."""
        if data is None:
            return None
        if isinstance(data, cls):
            return data
        if not isinstance(data, Mapping):
            logger.warning(f"{cls.__name__}: expected a mapping, got {type(data).__name__}; using defaults")
            return None
        return cls.model_validate(data)

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class BankSnapshot(Snapshot):
    balance: Optional[NonNegativeFloat] = None


class PlayerSnapshot(Snapshot):
    bank: Optional[BankSnapshot] = None
    owned_shares: Optional[Dict[str, NonNegativeInt]] = Field(None, alias="ownedShares")


class CompanySnapshot(Snapshot):
    name: Optional[str] = None
    value: Optional[NonNegativeFloat] = None
    stock_value_change: Optional[float] = Field(None, alias="stockValueChange")
    last_updated: Optional[Timestamp] = Field(None, alias="lastUpdated")


class StockExchangeSnapshot(Snapshot):
    companies: Optional[List[CompanySnapshot]] = None

    @field_validator("companies", mode="before")
    @classmethod
    def _skip_unreadable_companies(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        readable = [entry for entry in value if isinstance(entry, (Mapping, CompanySnapshot))]
        if len(readable) != len(value):
            logger.warning(f"StockExchangeSnapshot: skipped {len(value) - len(readable)} unreadable company entries")
        return readable


class MoneyGeneratorSnapshot(Snapshot):
    base_cash_per_click: Optional[NonNegativeInt] = Field(None, alias="baseCashPerClick")
    boost_expires: Optional[Timestamp] = Field(None, alias="boostExpires")


class TickerSnapshot(Snapshot):
    stock_exchange: Optional[StockExchangeSnapshot] = Field(None, alias="stockExchange")
    max_previewed_companies: Optional[NonNegativeInt] = Field(None, alias="maxPreviewedCompanies")
    ticker_interval: Optional[PositiveInt] = Field(None, alias="tickerInterval")


class GameSnapshot(Snapshot):
    player: Optional[PlayerSnapshot] = None
    money_generator: Optional[MoneyGeneratorSnapshot] = Field(None, alias="moneyGenerator")
    ticker: Optional[TickerSnapshot] = None
    current_panel: Optional[str] = Field(None, alias="currentPanel")
