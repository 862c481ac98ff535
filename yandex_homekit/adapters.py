"""Value adapters translating between remote and local representations.

Every adapter is a pure function pair configured once from the
capability or property ``parameters``: ``to_local`` turns a remote value
into what the local characteristic expects and ``to_remote`` goes the
other way. Event adapters additionally take a ``changed`` flag and report
``None`` (nothing to emit) when the remote event is a repeat.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any, Generic, TypeVar

from .accessory import (
    Active,
    AirQuality,
    CarbonMonoxideDetected,
    ContactSensorState,
    LeakDetected,
    ProgrammableSwitchEvent,
    SmokeDetected,
    StatusLowBattery,
)
from .color import hs_to_hsv, hs_to_rgb, hsv_to_hs, rgb_to_hs, scale_range
from .const import (
    LOCAL_MIRED_MAX,
    LOCAL_MIRED_MIN,
    LOCAL_PERCENT_MAX,
    LOCAL_PERCENT_MIN,
    UNIT_KELVIN,
)
from .models import Range

RemoteT = TypeVar("RemoteT")
LocalT = TypeVar("LocalT")

KELVIN_OFFSET = 273.15

_LOCAL_PERCENT = {"min": LOCAL_PERCENT_MIN, "max": LOCAL_PERCENT_MAX}
_LOCAL_MIRED = {"min": LOCAL_MIRED_MIN, "max": LOCAL_MIRED_MAX}


def _bounded(bounds: Mapping[str, Any] | None) -> Range | None:
    """Return ``bounds`` as a :class:`Range` when both ends are usable."""

    if not bounds:
        return None
    parsed = Range.model_validate(bounds)
    return parsed if parsed.is_bounded else None


class Adapter(Generic[RemoteT, LocalT]):
    """Base class for remote/local value transcoders."""

    def __init__(self, params: Mapping[str, Any] | None = None) -> None:
        """Store the capability or property parameters."""

        self.params: Mapping[str, Any] = params or {}

    def to_remote(self, value: LocalT, changed: bool | None = None) -> RemoteT:
        raise NotImplementedError

    def to_local(self, value: RemoteT, changed: bool | None = None) -> LocalT:
        raise NotImplementedError


class BooleanAdapter(Adapter[bool, bool]):
    """Pass booleans through unchanged."""

    def to_remote(self, value: bool, changed: bool | None = None) -> bool:
        return bool(value)

    def to_local(self, value: bool, changed: bool | None = None) -> bool:
        return bool(value)


class NumberAdapter(Adapter[float, float]):
    """Pass numbers through unchanged."""

    def to_remote(self, value: float, changed: bool | None = None) -> float:
        return value

    def to_local(self, value: float, changed: bool | None = None) -> float:
        return value


class ActiveAdapter(Adapter[bool, Active]):
    """Map a remote boolean onto the ``Active`` enumeration."""

    def to_remote(self, value: int, changed: bool | None = None) -> bool:
        return value == Active.ACTIVE

    def to_local(self, value: bool, changed: bool | None = None) -> Active:
        return Active.ACTIVE if value else Active.INACTIVE


class TemperatureAdapter(Adapter[float, float]):
    """Convert Kelvin readings to Celsius when the property reports Kelvin."""

    @property
    def _is_kelvin(self) -> bool:
        return self.params.get("unit") == UNIT_KELVIN

    def to_remote(self, value: float, changed: bool | None = None) -> float:
        if self._is_kelvin:
            return value + KELVIN_OFFSET
        return value

    def to_local(self, value: float, changed: bool | None = None) -> float:
        if self._is_kelvin:
            return value - KELVIN_OFFSET
        return value


class AirQualityAdapter(Adapter[float, int]):
    """Quantize a remote 0..1 air quality ratio onto the 1..5 local scale."""

    def to_remote(self, value: int, changed: bool | None = None) -> float:
        return value / 5

    def to_local(self, value: float, changed: bool | None = None) -> int:
        # Round first so float noise such as 4.000000000000001 stays at 4.
        level = math.ceil(round(value * 5, 6))
        return min(max(level, AirQuality.UNKNOWN), AirQuality.POOR)


class RangeAdapter(Adapter[float, float]):
    """Rescale a bounded remote range onto the local 0..100 scale."""

    @property
    def _range(self) -> Range | None:
        return _bounded(self.params.get("range"))

    def to_remote(self, value: float, changed: bool | None = None) -> float:
        bounds = self._range
        if bounds is None:
            return value
        return scale_range(value, _LOCAL_PERCENT, bounds)

    def to_local(self, value: float, changed: bool | None = None) -> float:
        bounds = self._range
        if bounds is None:
            return value
        return scale_range(value, bounds, _LOCAL_PERCENT)


class ColorModelAdapter(Adapter[dict[str, Any], dict[str, float]]):
    """Translate hue/saturation to and from the remote color model.

    Remote values are capability states: ``{"instance": "rgb", "value": int}``
    or ``{"instance": "hsv", "value": {"h": .., "s": .., "v": ..}}``. Local
    values are ``{"hue": .., "saturation": ..}``.
    """

    def to_remote(
        self, value: Mapping[str, float], changed: bool | None = None
    ) -> dict[str, Any]:
        hue = value["hue"]
        saturation = value["saturation"]
        if self.params.get("color_model") == "rgb":
            return {"instance": "rgb", "value": hs_to_rgb(hue, saturation)}
        return {"instance": "hsv", "value": hs_to_hsv(hue, saturation)}

    def to_local(
        self, value: Mapping[str, Any], changed: bool | None = None
    ) -> dict[str, float]:
        if value["instance"] == "rgb":
            hue, saturation = rgb_to_hs(int(value["value"]))
        else:
            hsv = value["value"]
            hue, saturation = hsv_to_hs(hsv["h"], hsv["s"], hsv.get("v", 100))
        return {"hue": hue, "saturation": saturation}


class ColorTemperatureAdapter(Adapter[float, float]):
    """Rescale the remote Kelvin range onto the local mired range."""

    @property
    def _range(self) -> Range | None:
        return _bounded(self.params.get("temperature_k"))

    def to_remote(self, value: float, changed: bool | None = None) -> float:
        bounds = self._range
        if bounds is None:
            return value
        return round(scale_range(value, _LOCAL_MIRED, bounds))

    def to_local(self, value: float, changed: bool | None = None) -> float:
        bounds = self._range
        if bounds is None:
            return value
        return round(scale_range(value, bounds, _LOCAL_MIRED))


class _LookupAdapter(Adapter[str | None, int | None]):
    """Map a closed remote vocabulary onto local values through a table."""

    table: Mapping[str, int] = {}
    ignore_changed = False

    def to_remote(self, value: int, changed: bool | None = None) -> str | None:
        if changed is False and not self.ignore_changed:
            return None
        for remote, local in self.table.items():
            if local == value:
                return remote
        return None

    def to_local(self, value: str, changed: bool | None = None) -> int | None:
        if changed is False and not self.ignore_changed:
            return None
        return self.table.get(value)


class SwitchEventAdapter(_LookupAdapter):
    """Translate button presses into programmable switch events."""

    table = {
        "click": ProgrammableSwitchEvent.SINGLE_PRESS,
        "double_click": ProgrammableSwitchEvent.DOUBLE_PRESS,
        "long_press": ProgrammableSwitchEvent.LONG_PRESS,
    }


class LowBatteryAdapter(_LookupAdapter):
    """Translate battery level events into the low battery status."""

    table = {
        "normal": StatusLowBattery.BATTERY_LEVEL_NORMAL,
        "low": StatusLowBattery.BATTERY_LEVEL_LOW,
    }


class MotionAdapter(Adapter[str | None, bool | None]):
    """Translate motion events into the motion detected flag."""

    def to_remote(self, value: bool, changed: bool | None = None) -> str | None:
        if changed is False:
            return None
        return "detected" if value else "not_detected"

    def to_local(self, value: str, changed: bool | None = None) -> bool | None:
        if changed is False:
            return None
        return value == "detected"


class EventStateAdapter(_LookupAdapter):
    """Lookup adapter for events that describe a lasting state.

    Contact, leak, smoke and gas sensors report a condition rather than a
    momentary event, so a repeated value is still worth reporting.
    """

    ignore_changed = True

    _TABLES: dict[str, dict[str, int]] = {
        "open": {
            "closed": ContactSensorState.CONTACT_DETECTED,
            "opened": ContactSensorState.CONTACT_NOT_DETECTED,
        },
        "water_leak": {
            "dry": LeakDetected.LEAK_NOT_DETECTED,
            "leak": LeakDetected.LEAK_DETECTED,
        },
        "smoke": {
            "not_detected": SmokeDetected.SMOKE_NOT_DETECTED,
            "detected": SmokeDetected.SMOKE_DETECTED,
            "high": SmokeDetected.SMOKE_DETECTED,
        },
        "gas": {
            "not_detected": CarbonMonoxideDetected.CO_LEVELS_NORMAL,
            "detected": CarbonMonoxideDetected.CO_LEVELS_ABNORMAL,
            "high": CarbonMonoxideDetected.CO_LEVELS_ABNORMAL,
        },
    }

    def __init__(self, params: Mapping[str, Any] | None = None) -> None:
        """Pick the lookup table matching the event instance."""

        super().__init__(params)
        self.table = self._TABLES.get(self.params.get("instance", ""), {})
