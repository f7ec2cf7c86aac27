import logging
import re
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dexcom_share.domain.errors import MalformedReading

logger = logging.getLogger(__name__)

# Share wraps epoch milliseconds: "Date(1700000000000)" or "Date(1700000000000-0500)"
_VENDOR_DATE = re.compile(r"^/?Date\((-?\d+)(?:[+-]\d{4})?\)/?$")

MGDL_PER_MMOLL = 18.0182

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class TrendDirection(IntEnum):
    NONE = 0
    DOUBLE_UP = 1
    SINGLE_UP = 2
    FORTY_FIVE_UP = 3
    FLAT = 4
    FORTY_FIVE_DOWN = 5
    SINGLE_DOWN = 6
    DOUBLE_DOWN = 7
    NOT_COMPUTABLE = 8
    RATE_OUT_OF_RANGE = 9

    @classmethod
    def parse(cls, value: Any) -> "TrendDirection":
        """Accepts the numeric code or the vendor name ("Flat", "FortyFiveUp", ...)."""
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                pass
        elif isinstance(value, str):
            key = value.strip().lower()
            if key.isdigit():
                return cls.parse(int(key))
            if key in _TREND_NAMES:
                return _TREND_NAMES[key]
        logger.debug(f"Unknown trend value {value!r}, using NONE")
        return cls.NONE

    @property
    def arrow(self) -> str:
        return _TREND_ARROWS[self]


_TREND_NAMES = {
    "none": TrendDirection.NONE,
    "doubleup": TrendDirection.DOUBLE_UP,
    "singleup": TrendDirection.SINGLE_UP,
    "fortyfiveup": TrendDirection.FORTY_FIVE_UP,
    "flat": TrendDirection.FLAT,
    "fortyfivedown": TrendDirection.FORTY_FIVE_DOWN,
    "singledown": TrendDirection.SINGLE_DOWN,
    "doubledown": TrendDirection.DOUBLE_DOWN,
    "notcomputable": TrendDirection.NOT_COMPUTABLE,
    "rateoutofrange": TrendDirection.RATE_OUT_OF_RANGE,
}

_TREND_ARROWS = {
    TrendDirection.NONE: "",
    TrendDirection.DOUBLE_UP: "↑↑",
    TrendDirection.SINGLE_UP: "↑",
    TrendDirection.FORTY_FIVE_UP: "↗",
    TrendDirection.FLAT: "→",
    TrendDirection.FORTY_FIVE_DOWN: "↘",
    TrendDirection.SINGLE_DOWN: "↓",
    TrendDirection.DOUBLE_DOWN: "↓↓",
    TrendDirection.NOT_COMPUTABLE: "?",
    TrendDirection.RATE_OUT_OF_RANGE: "-",
}


class GlucoseReading(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: int  # mg/dL
    trend: TrendDirection = TrendDirection.NONE
    timestamp: datetime
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def mmol_l(self) -> float:
        return round(self.value / MGDL_PER_MMOLL, 1)


def parse_vendor_date(value: Any) -> datetime:
    """
    Convert a Share "Date(<ms>)" string into an aware UTC datetime.

    Raises:
        MalformedReading: If the value does not embed a millisecond epoch.
    """
    if not isinstance(value, str):
        raise MalformedReading(f"Expected vendor date string, got {value!r}")
    match = _VENDOR_DATE.match(value.strip())
    if not match:
        raise MalformedReading(f"Unparsable vendor date {value!r}")
    millis = int(match.group(1))
    try:
        return _EPOCH + timedelta(milliseconds=millis)
    except OverflowError as e:
        raise MalformedReading(f"Vendor date {value!r} out of range") from e


def parse_reading(record: Any) -> GlucoseReading:
    """Normalise one raw record of the latest-glucose endpoint."""
    if not isinstance(record, dict):
        raise MalformedReading(f"Expected a JSON object, got {type(record).__name__}")

    # WT is the wall time of the sensor reading; ST is the system (receiver) time
    stamp = record.get("WT", record.get("ST"))
    timestamp = parse_vendor_date(stamp)

    try:
        return GlucoseReading(
            value=record.get("Value"),
            trend=TrendDirection.parse(record.get("Trend")),
            timestamp=timestamp,
            raw=dict(record),
        )
    except ValidationError as e:
        raise MalformedReading(f"Invalid glucose record: {e.errors()[0]['msg']}") from e
