"""Capability and property bindings for bridged devices."""

from __future__ import annotations

from .base import Binding, BindingKey
from .capabilities import (
    CAPABILITY_BINDINGS,
    CapabilityBinding,
    ColorSettingBinding,
    OnOffBinding,
    RangeBinding,
    capability_binding_for,
)
from .debounce import Debouncer
from .properties import (
    PROPERTY_BINDINGS,
    EventPropertyBinding,
    FloatPropertyBinding,
    PropertyBinding,
    property_binding_for,
)

__all__ = [
    "CAPABILITY_BINDINGS",
    "PROPERTY_BINDINGS",
    "Binding",
    "BindingKey",
    "CapabilityBinding",
    "ColorSettingBinding",
    "Debouncer",
    "EventPropertyBinding",
    "FloatPropertyBinding",
    "OnOffBinding",
    "PropertyBinding",
    "RangeBinding",
    "capability_binding_for",
    "property_binding_for",
]
