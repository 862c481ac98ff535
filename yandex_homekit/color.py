"""Pure color and range math shared by the value adapters."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any


def _bound(scale: Mapping[str, Any] | Any, key: str) -> float | None:
    """Read ``key`` from a mapping or attribute-style range."""

    if isinstance(scale, Mapping):
        return scale.get(key)
    return getattr(scale, key, None)


def scale_range(
    value: float, from_scale: Mapping[str, Any] | Any, to_scale: Mapping[str, Any] | Any
) -> float:
    """Linearly rescale ``value`` from one ``{min, max}`` range to another."""

    from_min = _bound(from_scale, "min")
    from_max = _bound(from_scale, "max")
    to_min = _bound(to_scale, "min")
    to_max = _bound(to_scale, "max")
    if None in (from_min, from_max, to_min, to_max) or from_max == from_min:
        return value
    proportion = (value - from_min) / (from_max - from_min)
    return to_min + proportion * (to_max - to_min)


def hs_to_rgb(hue: float, saturation: float) -> int:
    """Convert hue/saturation at full brightness into a packed ``0xRRGGBB``."""

    hue = hue % 360
    chroma = saturation / 100
    x = chroma * (1 - abs((hue / 60) % 2 - 1))
    m = 1 - chroma

    sector = int(hue // 60)
    red, green, blue = (
        (chroma, x, 0),
        (x, chroma, 0),
        (0, chroma, x),
        (0, x, chroma),
        (x, 0, chroma),
        (chroma, 0, x),
    )[sector]

    red = round((red + m) * 255)
    green = round((green + m) * 255)
    blue = round((blue + m) * 255)
    return (red << 16) | (green << 8) | blue


def rgb_to_hs(rgb: int) -> tuple[float, float]:
    """Convert a packed ``0xRRGGBB`` into hue (degrees) and saturation (percent)."""

    red = ((rgb >> 16) & 0xFF) / 255
    green = ((rgb >> 8) & 0xFF) / 255
    blue = (rgb & 0xFF) / 255

    high = max(red, green, blue)
    low = min(red, green, blue)
    delta = high - low

    if delta == 0:
        hue = 0.0
    elif high == red:
        hue = 60 * (((green - blue) / delta) % 6)
    elif high == green:
        hue = 60 * (((blue - red) / delta) + 2)
    else:
        hue = 60 * (((red - green) / delta) + 4)

    hue = (hue + 360) % 360
    saturation = 0.0 if high == 0 else delta / high * 100
    return hue, saturation


def hsv_to_hs(h: float, s: float, v: float) -> tuple[float, float]:
    """Fold the value channel of an HSV triple into the saturation."""

    return h, s * (v / 100)


def hs_to_hsv(hue: float, saturation: float) -> dict[str, int]:
    """Return the remote HSV object for a hue/saturation pair at full value."""

    return {"h": round(hue) % 360, "s": round(saturation), "v": 100}


def kelvin_to_rgb(kelvin: float) -> tuple[float, float, float]:
    """Approximate the RGB color of a blackbody at ``kelvin``.

    Uses the Tanner Helland curve fit, valid between 1000K and 40000K.
    """

    temp = min(max(kelvin, 1000), 40000) / 100

    if temp <= 66:
        red = 255.0
        green = 99.4708025861 * math.log(temp) - 161.1195681661
    else:
        red = 329.698727446 * ((temp - 60) ** -0.1332047592)
        green = 288.1221695283 * ((temp - 60) ** -0.0755148492)

    if temp >= 66:
        blue = 255.0
    elif temp <= 19:
        blue = 0.0
    else:
        blue = 138.5177312231 * math.log(temp - 10) - 305.0447927307

    def _clamp(channel: float) -> float:
        return min(max(channel, 0), 255)

    return _clamp(red), _clamp(green), _clamp(blue)


def mired_to_hs(mired: float) -> tuple[float, float]:
    """Return the hue/saturation that best mirrors a color temperature."""

    if mired <= 0:
        return 0.0, 0.0
    red, green, blue = kelvin_to_rgb(1_000_000 / mired)
    return rgb_to_hs((round(red) << 16) | (round(green) << 8) | round(blue))
