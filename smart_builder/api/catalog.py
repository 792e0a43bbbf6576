"""
GET /catalog
Returns the source branches, devices and plugins the wizard can offer.
"""
from dataclasses import asdict

from fastapi import APIRouter

from smart_builder.core.catalog import DEVICES, MUTUAL_EXCLUSIVE_GROUPS, PLUGINS, SOURCE_BRANCHES

router = APIRouter()


@router.get("/catalog")
async def get_catalog():
    return {
        "source_branches": [asdict(b) for b in SOURCE_BRANCHES.values()],
        "devices": [asdict(d) for d in DEVICES.values()],
        "plugins": [asdict(p) for p in PLUGINS.values()],
        "exclusive_groups": [list(g) for g in MUTUAL_EXCLUSIVE_GROUPS],
    }
