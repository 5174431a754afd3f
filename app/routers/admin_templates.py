# app/routers/admin_templates.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status

from app.api.deps import get_current_admin, get_templates
from app.services.storage import GatewayError
from app.services.templates import TemplateStore

logger = logging.getLogger("kiosk.templates")

router = APIRouter(prefix="/admin/templates", tags=["admin:templates"], dependencies=[Depends(get_current_admin)])


def _name_and_data(payload: Optional[dict]):
    payload = payload or {}
    name, data = payload.get("name"), payload.get("data")
    if not name or not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing_name_or_data")
    return payload, name, data


@router.get("")
async def list_templates(templates: TemplateStore = Depends(get_templates)):
    try:
        items = await templates.list()
    except GatewayError:
        logger.exception("lista template fallita")
        raise HTTPException(status_code=500, detail="list_templates_failed")
    return {"ok": True, "templates": [t.model_dump() for t in items]}


@router.get("/{template_id}")
async def get_template(template_id: str, templates: TemplateStore = Depends(get_templates)):
    try:
        item = await templates.get(template_id)
    except GatewayError:
        logger.exception("lettura template %s fallita", template_id)
        raise HTTPException(status_code=500, detail="get_template_failed")
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="template_not_found")
    return {"ok": True, "template": item.model_dump()}


@router.post("")
async def create_template(payload: Optional[dict] = Body(None), templates: TemplateStore = Depends(get_templates)):
    _, name, data = _name_and_data(payload)
    try:
        item = await templates.create(str(name), data, True)
    except GatewayError:
        logger.exception("creazione template fallita")
        raise HTTPException(status_code=500, detail="create_template_failed")
    if item is None:
        raise HTTPException(status_code=500, detail="save_template_failed")
    return {"ok": True, "template": item.model_dump(exclude={"data"})}


@router.put("/{template_id}")
async def update_template(
    template_id: str,
    payload: Optional[dict] = Body(None),
    templates: TemplateStore = Depends(get_templates),
):
    payload, name, data = _name_and_data(payload)
    try:
        ok = await templates.update(template_id, str(name), data, payload.get("isActive") is not False)
    except GatewayError:
        logger.exception("aggiornamento template %s fallito", template_id)
        ok = False
    if not ok:
        raise HTTPException(status_code=500, detail="update_template_failed")
    return {"ok": True}


@router.delete("/{template_id}")
async def delete_template(template_id: str, templates: TemplateStore = Depends(get_templates)):
    try:
        ok = await templates.delete(template_id)
    except GatewayError:
        logger.exception("eliminazione template %s fallita", template_id)
        ok = False
    if not ok:
        raise HTTPException(status_code=500, detail="delete_template_failed")
    return {"ok": True}
