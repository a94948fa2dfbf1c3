# concerndesk/api/routes/concerns.py
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, File, Form, Query, Request, UploadFile, status

from concerndesk.api.deps import (
    ConcernDep,
    DBDep,
    IdentityDep,
    LifecycleDep,
    SettingsDep,
    StoreDep,
)
from concerndesk.core.logging import log_extra
from concerndesk.db.models import CampusEnum, CategoryEnum, ConcernStatusEnum, SeverityEnum
from concerndesk.schemas.common import Envelope
from concerndesk.schemas.concerns import (
    AssignIn,
    ConcernCreate,
    ConcernFilters,
    ConcernOut,
    ConcernStats,
    RateIn,
    StatusUpdateIn,
)
from concerndesk.services.policy import authorize, can_access, can_submit, can_view_stats
from concerndesk.services.uploads import CONCERN_ATTACHMENTS_LIMIT, discard_uploads, save_uploads

router = APIRouter()
log = logging.getLogger(__name__)


@router.post("", response_model=Envelope[ConcernOut], status_code=status.HTTP_201_CREATED)
async def create_concern(
    request: Request,
    db: DBDep,
    actor: IdentityDep,
    engine: LifecycleDep,
    settings: SettingsDep,
    title: str = Form(...),
    description: str = Form(...),
    category: CategoryEnum = Form(...),
    severity: SeverityEnum = Form(SeverityEnum.medium),
    is_anonymous: bool = Form(False),
    campus: Optional[CampusEnum] = Form(None),
    attachments: Optional[List[UploadFile]] = File(None),
):
    data = ConcernCreate(
        title=title,
        description=description,
        category=category,
        severity=severity,
        is_anonymous=is_anonymous,
        campus=campus,
    )
    # спершу права, потім диск
    authorize(can_submit(actor), "Only students can submit concerns")

    files = await save_uploads(attachments, CONCERN_ATTACHMENTS_LIMIT, settings)
    try:
        concern = await engine.submit(db, actor, data, files)
    except Exception:
        await discard_uploads(files, settings)
        raise
    log.info("concern_created", extra={**log_extra(request), "ticket_id": concern.ticket_id})
    return Envelope[ConcernOut](
        message="Concern submitted successfully",
        data=ConcernOut.model_validate(concern),
    )


@router.get("", response_model=Envelope[list[ConcernOut]])
async def list_concerns(
    db: DBDep,
    actor: IdentityDep,
    store: StoreDep,
    status_: Optional[ConcernStatusEnum] = Query(default=None, alias="status"),
    category: Optional[CategoryEnum] = None,
    severity: Optional[SeverityEnum] = None,
    campus: Optional[CampusEnum] = None,
    search: Optional[str] = None,
):
    filters = ConcernFilters(
        status=status_, category=category, severity=severity, campus=campus, search=search
    )
    rows = await store.list(db, actor, filters)
    data = [ConcernOut.model_validate(c) for c in rows]
    return Envelope[list[ConcernOut]](data=data, count=len(data))


# /stats оголошено до /{concern_id}, інакше шлях перехопить параметр
@router.get("/stats", response_model=Envelope[ConcernStats])
async def concern_stats(db: DBDep, actor: IdentityDep, store: StoreDep):
    authorize(can_view_stats(actor), "Not authorized to view statistics")
    return Envelope[ConcernStats](data=await store.stats(db))


@router.get("/{concern_id}", response_model=Envelope[ConcernOut])
async def get_concern(concern: ConcernDep, actor: IdentityDep):
    authorize(can_access(actor, concern), "Not authorized to access this concern")
    return Envelope[ConcernOut](data=ConcernOut.model_validate(concern))


@router.put("/{concern_id}/status", response_model=Envelope[ConcernOut])
async def update_status(
    payload: StatusUpdateIn,
    concern: ConcernDep,
    db: DBDep,
    actor: IdentityDep,
    engine: LifecycleDep,
):
    concern = await engine.transition(db, concern, payload.status, actor, payload.comment)
    return Envelope[ConcernOut](
        message="Concern status updated successfully",
        data=ConcernOut.model_validate(concern),
    )


@router.put("/{concern_id}/assign", response_model=Envelope[ConcernOut])
async def assign_concern(
    payload: AssignIn,
    concern: ConcernDep,
    db: DBDep,
    actor: IdentityDep,
    engine: LifecycleDep,
):
    concern = await engine.assign(db, concern, payload.mentor_id, actor)
    return Envelope[ConcernOut](
        message="Concern assigned successfully",
        data=ConcernOut.model_validate(concern),
    )


@router.put("/{concern_id}/rate", response_model=Envelope[ConcernOut])
async def rate_concern(
    payload: RateIn,
    concern: ConcernDep,
    db: DBDep,
    actor: IdentityDep,
    engine: LifecycleDep,
):
    concern = await engine.rate(db, concern, actor, payload.rating, payload.feedback)
    return Envelope[ConcernOut](
        message="Rating submitted successfully",
        data=ConcernOut.model_validate(concern),
    )


@router.delete("/{concern_id}", response_model=Envelope[None])
async def delete_concern(
    concern: ConcernDep,
    db: DBDep,
    actor: IdentityDep,
    engine: LifecycleDep,
):
    await engine.delete(db, concern, actor)
    return Envelope[None](message="Concern deleted successfully")
