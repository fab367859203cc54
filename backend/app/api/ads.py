"""Ad endpoints — public serving and tracking, admin management and analytics."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import AuthContext, require_admin
from app.api.responses import ok
from app.database import get_db
from app.models.schemas import AdBulkRequest, AdIn
from app.models.tables import Ad
from app.services import ads as ad_service
from app.services.catalog import column_values, list_collection
from app.services.query import build_filter_query, build_sort_query

logger = logging.getLogger(__name__)

router = APIRouter()

AD_FILTERS = {"placement": "placement", "network": "network"}


# ── Public ───────────────────────────────────────────────────────

@router.get("/ads/placement/{placement}")
async def ads_for_placement(
    placement: str,
    page: str = ad_service.WILDCARD,
    device: str = ad_service.WILDCARD,
    country: Optional[str] = None,
    limit: int = ad_service.DEFAULT_AD_LIMIT,
    db: AsyncSession = Depends(get_db),
):
    ads = await ad_service.active_ads_for(db, placement, page, device, country, limit)
    return ok({
        "ads": [ad_service.public_view(ad) for ad in ads],
        "placement": placement,
        "count": len(ads),
    })


@router.post("/ads/{ad_id}/impression")
async def record_impression(ad_id: int, db: AsyncSession = Depends(get_db)):
    await ad_service.record_impression(db, ad_id)
    return ok(message="Impression recorded")


@router.post("/ads/{ad_id}/click")
async def record_click(ad_id: int, db: AsyncSession = Depends(get_db)):
    redirect_url = await ad_service.record_click(db, ad_id)
    data = {"redirectUrl": redirect_url} if redirect_url else None
    return ok(data, "Click recorded")


# ── Admin ────────────────────────────────────────────────────────

@router.get("/ads")
async def list_ads(
    request: Request,
    page: Optional[str] = None,
    limit: str = "20",
    isActive: Optional[str] = None,
    sortBy: str = "priority",
    sortOrder: str = "desc",
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    params = {k: request.query_params[k] for k in ("type", *AD_FILTERS) if k in request.query_params}
    predicate = build_filter_query(params, AD_FILTERS)
    if isActive in ("true", "false"):
        predicate = predicate.where("is_active", "eq", isActive == "true")
    docs, pg = await list_collection(db, Ad, predicate, build_sort_query(sortBy, sortOrder), page, limit)
    return ok({"ads": docs, "pagination": pg.envelope()})


@router.get("/ads/analytics")
async def ad_analytics(
    startDate: Optional[datetime] = None,
    endDate: Optional[datetime] = None,
    placement: Optional[str] = None,
    type: Optional[str] = None,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return ok(await ad_service.analytics(db, startDate, endDate, placement, type))


@router.post("/ads/bulk")
async def bulk_ads(
    body: AdBulkRequest,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await ad_service.bulk_action(db, body.ad_ids, body.action, body.data, auth.user_id)
    return ok(result, f"Bulk {body.action} completed successfully")


@router.get("/ads/{ad_id}")
async def get_ad(ad_id: int, auth: AuthContext = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    ad = await ad_service.get_ad(db, ad_id)
    return ok({"ad": ad.to_document()})


@router.post("/ads", status_code=201)
async def create_ad(body: AdIn, auth: AuthContext = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    values = column_values(body)
    if values.get("start_date") is None:
        values.pop("start_date")  # column default: now
    ad = Ad(**values, added_by_id=auth.user_id)
    db.add(ad)
    await db.flush()
    logger.info(f"Ad {ad.id} '{ad.name}' created for {ad.placement}")
    return ok({"ad": ad.to_document()}, "Ad created successfully")


@router.put("/ads/{ad_id}")
async def update_ad(
    ad_id: int,
    body: AdIn,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    ad = await ad_service.get_ad(db, ad_id)
    for key, value in column_values(body, exclude_unset=True).items():
        setattr(ad, key, value)
    ad.last_modified_by_id = auth.user_id
    await db.flush()
    return ok({"ad": ad.to_document()}, "Ad updated successfully")


@router.delete("/ads/{ad_id}")
async def delete_ad(ad_id: int, auth: AuthContext = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    ad = await ad_service.get_ad(db, ad_id)
    await db.delete(ad)
    await db.flush()
    return ok(message="Ad deleted successfully")


@router.patch("/ads/{ad_id}/toggle")
async def toggle_ad(ad_id: int, auth: AuthContext = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    ad = await ad_service.get_ad(db, ad_id)
    ad.is_active = not ad.is_active
    ad.last_modified_by_id = auth.user_id
    await db.flush()
    state = "activated" if ad.is_active else "deactivated"
    return ok({"ad": ad.to_document()}, f"Ad {state} successfully")
