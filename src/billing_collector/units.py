import json
from enum import Enum
from typing import Mapping

from billing_collector.errors import ConfigurationError, UnitConversionError

_GIB = 1024 * 1024 * 1024


class Unit(str, Enum):
    """
    contractual units records are billed in.
    """

    GB_DAY = "GBDay"
    GB = "GB"
    KREQ = "KReq"
    INSTANCE_HOUR = "InstanceHour"


class Quantity(str, Enum):
    """
    raw units providers report usage in.
    """

    BYTES = "bytes"
    REQUESTS = "requests"
    INSTANCES = "instances"


# (raw, contractual) -> divisor
_CONVERSIONS: "dict[tuple[Quantity, Unit], float]" = {
    (Quantity.BYTES, Unit.GB_DAY): _GIB,
    (Quantity.BYTES, Unit.GB): _GIB,
    (Quantity.REQUESTS, Unit.KREQ): 1000,
    (Quantity.INSTANCES, Unit.INSTANCE_HOUR): 1,
}


def convert(value: "float", source: "Quantity", target: "Unit") -> "float":
    """
    converts a raw provider value into the contractual unit.
    Raises UnitConversionError for pairs without a known conversion.
    """
    divisor = _CONVERSIONS.get((source, target))
    if divisor is None:
        raise UnitConversionError(f"no conversion from {source.value} to {target.value}")
    return value / divisor


class UomMapping:
    """
    UomMapping maps contractual units to the unit-of-measure IDs
    configured in the billing system.
    """

    def __init__(self, mapping: "Mapping[str, str]") -> "None":
        self._mapping = dict(mapping)

    @classmethod
    def from_json(cls, raw: "str") -> "UomMapping":
        if not raw:
            return cls({})
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"invalid unit of measure mapping: {exc}") from exc

        if not isinstance(parsed, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in parsed.items()
        ):
            raise ConfigurationError("unit of measure mapping must be a JSON object of strings")
        return cls(parsed)

    def unit_id(self, unit: "Unit") -> "str":
        try:
            return self._mapping[unit.value]
        except KeyError:
            raise UnitConversionError(
                f"no unit of measure configured for {unit.value}"
            ) from None

    def __eq__(self, other: "object") -> "bool":
        return isinstance(other, UomMapping) and self._mapping == other._mapping

    def __repr__(self) -> "str":
        return f"UomMapping({self._mapping!r})"
