# slatedesk/routers/framework_routes.py
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response

from slatedesk.core import persist as store
from slatedesk.models.factors import DEFAULT_WEIGHTS, KNOWN_FACTORS
from slatedesk.models.schemas import FrameworkCreate, FrameworkPatch, RuleCreate, RulePatch

logger = logging.getLogger("slatedesk.frameworks")
router = APIRouter(tags=["Frameworks"])


async def _require_framework(framework_id: str):
    framework = await store.get_framework(framework_id)
    if not framework:
        raise HTTPException(status_code=404, detail="Framework not found")
    return framework


@router.get("/factors")
async def list_factors():
    """Known factor names and their default weights. Frameworks may use any other name too."""
    return {"factors": list(KNOWN_FACTORS), "defaultWeights": DEFAULT_WEIGHTS}


@router.get("/frameworks")
async def list_frameworks():
    return await store.get_frameworks()


@router.get("/frameworks/active")
async def active_framework():
    framework = await store.get_active_framework()
    if not framework:
        raise HTTPException(status_code=404, detail="No active framework found")
    return framework


@router.get("/frameworks/{framework_id}")
async def get_framework(framework_id: str):
    return await _require_framework(framework_id)


@router.post("/frameworks", status_code=201)
async def create_framework(body: FrameworkCreate):
    data = body.model_dump(exclude_none=True)
    data.setdefault("weights", dict(DEFAULT_WEIGHTS))
    framework = await store.create_framework(data)
    logger.info("FRAMEWORK created id=%s active=%s", framework["id"], framework["isActive"])
    return framework


@router.patch("/frameworks/{framework_id}")
async def update_framework(framework_id: str, body: FrameworkPatch):
    data = body.model_dump(exclude_unset=True)
    changelog = data.pop("changelog", None)
    framework = await store.update_framework(framework_id, data, changelog=changelog)
    if not framework:
        raise HTTPException(status_code=404, detail="Framework not found")
    return framework


@router.delete("/frameworks/{framework_id}", status_code=204)
async def delete_framework(framework_id: str):
    if not await store.delete_framework(framework_id):
        raise HTTPException(status_code=404, detail="Framework not found")
    return Response(status_code=204)


@router.get("/frameworks/{framework_id}/versions")
async def list_versions(framework_id: str):
    return await store.get_framework_versions(framework_id)


# -------------------------
# Rules
# -------------------------
@router.get("/frameworks/{framework_id}/rules")
async def list_rules(framework_id: str):
    return await store.get_framework_rules(framework_id)


@router.post("/frameworks/{framework_id}/rules", status_code=201)
async def create_rule(framework_id: str, body: RuleCreate):
    await _require_framework(framework_id)
    return await store.create_framework_rule({**body.model_dump(exclude_none=True), "frameworkId": framework_id})


@router.patch("/framework-rules/{rule_id}")
async def update_rule(rule_id: str, body: RulePatch):
    rule = await store.update_framework_rule(rule_id, body.model_dump(exclude_unset=True))
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.delete("/framework-rules/{rule_id}", status_code=204)
async def delete_rule(rule_id: str):
    if not await store.delete_framework_rule(rule_id):
        raise HTTPException(status_code=404, detail="Rule not found")
    return Response(status_code=204)
