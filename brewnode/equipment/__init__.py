# brewnode/equipment/__init__.py
"""
Equipment registry for the brewing rig.

Maps every raw name the controller uses for a unit onto one canonical
identity, category and command route.
"""

from brewnode.equipment.registry import (
    DEFAULT_REGISTRY,
    DEFAULT_UNITS,
    CommandRoute,
    EquipmentRegistry,
    EquipmentUnit,
    Resolution,
    SensorCategory,
    compact_name,
    unit_from_config,
)

__all__ = [
    "DEFAULT_REGISTRY",
    "DEFAULT_UNITS",
    "CommandRoute",
    "EquipmentRegistry",
    "EquipmentUnit",
    "Resolution",
    "SensorCategory",
    "compact_name",
    "unit_from_config",
]
