"""
Plugin Conflicts
================
Detects plugin selections that cannot be built together.

Checks:
    1. MUTUALLY EXCLUSIVE GROUPS — more than one plugin from the same group
    2. ARCHITECTURE RESTRICTIONS — plugin not known to build on the device arch

Both checks are pure table lookups against smart_builder.core.catalog.
"""
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from smart_builder.core.catalog import ARCH_RESTRICTIONS, MUTUAL_EXCLUSIVE_GROUPS


@dataclass(frozen=True)
class PluginConflict:
    type: str
    plugins: Tuple[str, ...]
    message: str


@dataclass(frozen=True)
class ArchIncompatibility:
    plugin: str
    supported_arch: Tuple[str, ...]
    current_arch: str


def detect_plugin_conflicts(
    selected: Sequence[str],
    groups: Sequence[Tuple[str, ...]] = MUTUAL_EXCLUSIVE_GROUPS,
) -> List[PluginConflict]:
    """Return one conflict per mutually exclusive group violated by the selection."""
    conflicts: List[PluginConflict] = []
    chosen = set(selected)
    for group in groups:
        clashing = tuple(p for p in group if p in chosen)
        if len(clashing) > 1:
            conflicts.append(PluginConflict(
                type="mutual_exclusive",
                plugins=clashing,
                message=f"Plugin conflict: {', '.join(clashing)} cannot be selected together",
            ))
    return conflicts


def check_arch_compatibility(
    selected: Sequence[str],
    device_arch: str,
    restrictions: Dict[str, Tuple[str, ...]] = ARCH_RESTRICTIONS,
) -> List[ArchIncompatibility]:
    incompatible = []
    for plugin in selected:
        supported = restrictions.get(plugin)
        if supported and device_arch not in supported:
            incompatible.append(ArchIncompatibility(plugin, supported, device_arch))
    return incompatible
