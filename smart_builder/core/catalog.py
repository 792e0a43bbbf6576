"""
Build Catalog
=============
Static catalog of source branches, target devices and optional plugins
offered by the build wizard.

Device Classes:
    Each device maps to a device class ("router", "arm", "x86"). The class
    selects which phase-duration table in config/phases.yaml drives the
    progress estimate for that build. Unknown classes use "default".

Conflict Rules:
    MUTUAL_EXCLUSIVE_GROUPS — at most one plugin from each group may be selected.
    ARCH_RESTRICTIONS       — plugin → architectures it is known to build on.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Tuple


@dataclass(frozen=True)
class SourceBranch:
    key: str
    name: str
    repo: str
    branch: str
    description: str = ""
    recommended: bool = False


@dataclass(frozen=True)
class Device:
    key: str
    name: str
    arch: str
    target: str
    profile: str
    device_class: str = "router"
    flash_size: str = ""
    ram_size: str = ""
    recommended: bool = False


@dataclass(frozen=True)
class Plugin:
    key: str
    name: str
    category: str
    description: str = ""
    conflicts: Tuple[str, ...] = field(default_factory=tuple)
    size: str = ""


SOURCE_BRANCHES: Dict[str, SourceBranch] = {
    "openwrt-main": SourceBranch(
        key="openwrt-main",
        name="OpenWrt Official",
        repo="https://github.com/openwrt/openwrt",
        branch="openwrt-23.05",
        description="Latest stable release, best compatibility",
        recommended=True,
    ),
    "lede-master": SourceBranch(
        key="lede-master",
        name="Lean's LEDE",
        repo="https://github.com/coolsnowwolf/lede",
        branch="master",
        description="Popular fork with many bundled packages",
        recommended=True,
    ),
    "immortalwrt-master": SourceBranch(
        key="immortalwrt-master",
        name="ImmortalWrt",
        repo="https://github.com/immortalwrt/immortalwrt",
        branch="openwrt-23.05",
        description="Enhanced fork of the official tree",
    ),
}

DEVICES: Dict[str, Device] = {
    "xiaomi_4a_gigabit": Device(
        key="xiaomi_4a_gigabit",
        name="Xiaomi Router 4A Gigabit",
        arch="ramips",
        target="ramips/mt7621",
        profile="xiaomi_mi-router-4a-gigabit",
        flash_size="16M",
        ram_size="128M",
        recommended=True,
    ),
    "newifi_d2": Device(
        key="newifi_d2",
        name="Newifi D2",
        arch="ramips",
        target="ramips/mt7621",
        profile="newifi-d2",
        flash_size="32M",
        ram_size="512M",
        recommended=True,
    ),
    "rpi_4b": Device(
        key="rpi_4b",
        name="Raspberry Pi 4B",
        arch="bcm27xx",
        target="bcm27xx/bcm2711",
        profile="rpi-4",
        device_class="arm",
        ram_size="4G",
        recommended=True,
    ),
    "nanopi_r2s": Device(
        key="nanopi_r2s",
        name="NanoPi R2S",
        arch="rockchip",
        target="rockchip/armv8",
        profile="friendlyarm_nanopi-r2s",
        device_class="arm",
        ram_size="1G",
    ),
    "x86_64": Device(
        key="x86_64",
        name="x86 64-bit (generic)",
        arch="x86",
        target="x86/64",
        profile="generic",
        device_class="x86",
        recommended=True,
    ),
}

PLUGINS: Dict[str, Plugin] = {
    "luci-app-ssr-plus": Plugin(
        "luci-app-ssr-plus", "SSR Plus+", "proxy", "ShadowsocksR proxy",
        ("luci-app-passwall", "luci-app-openclash"), "5M",
    ),
    "luci-app-passwall": Plugin(
        "luci-app-passwall", "PassWall", "proxy", "Multi-protocol proxy",
        ("luci-app-ssr-plus", "luci-app-openclash"), "8M",
    ),
    "luci-app-openclash": Plugin(
        "luci-app-openclash", "OpenClash", "proxy", "Clash client",
        ("luci-app-ssr-plus", "luci-app-passwall"), "12M",
    ),
    "luci-app-adguardhome": Plugin(
        "luci-app-adguardhome", "AdGuard Home", "network", "DNS ad blocking",
        ("luci-app-adbyby-plus",), "15M",
    ),
    "luci-app-adbyby-plus": Plugin(
        "luci-app-adbyby-plus", "AdByby Plus+", "network", "Ad filtering",
        ("luci-app-adguardhome",), "3M",
    ),
    "luci-app-ddns": Plugin("luci-app-ddns", "Dynamic DNS", "network", "DDNS client", size="1M"),
    "luci-app-samba4": Plugin("luci-app-samba4", "Samba4", "storage", "Network file sharing", size="6M"),
    "luci-app-docker": Plugin("luci-app-docker", "Docker", "system", "Container runtime", size="40M"),
}

MUTUAL_EXCLUSIVE_GROUPS: List[Tuple[str, ...]] = [
    ("luci-app-ssr-plus", "luci-app-passwall", "luci-app-openclash"),
    ("luci-app-adguardhome", "luci-app-adbyby-plus"),
]

ARCH_RESTRICTIONS: Dict[str, Tuple[str, ...]] = {
    "luci-app-docker": ("x86", "bcm27xx", "rockchip"),
}


def device_class_for(device_key: str) -> str:
    """Return the phase-table class for a device key ("default" if unknown)."""
    device = DEVICES.get(device_key)
    return device.device_class if device else "default"
