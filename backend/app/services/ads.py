"""Ad serving, counters, analytics and bulk administration."""

import logging
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import NotFoundError, ValidationFailed
from app.models.schemas import AdPatch
from app.models.tables import Ad, as_utc, utcnow
from app.services.counters import increment

logger = logging.getLogger(__name__)

DEFAULT_AD_LIMIT = 5
WILDCARD = "all"

# Fields exposed when serving an ad to the public site
PUBLIC_FIELDS = ("id", "name", "type", "placement", "code", "redirect_url", "priority")


def targets(values: Optional[list], requested: Optional[str]) -> bool:
    """An empty target list, the requested value or the wildcard all match."""
    if not requested or requested == WILDCARD:
        return True
    values = values or []
    return not values or requested in values or WILDCARD in values


async def active_ads_for(
    db: AsyncSession,
    placement: str,
    page: Optional[str] = WILDCARD,
    device: Optional[str] = WILDCARD,
    country: Optional[str] = None,
    limit: int = DEFAULT_AD_LIMIT,
    now: Optional[datetime] = None,
) -> list[Ad]:
    """Ads to serve in ``placement`` right now, best first."""
    now = now or utcnow()
    stmt = select(Ad).where(Ad.placement == placement, Ad.is_active.is_(True))
    candidates = (await db.execute(stmt)).scalars().all()

    ads = [
        ad for ad in candidates
        if ad.is_currently_active(now)
        and targets(ad.target_pages, page)
        and targets(ad.target_devices, device)
    ]
    if country:
        ads = [ad for ad in ads if not ad.target_countries or country in ad.target_countries
               or WILDCARD in ad.target_countries]

    # priority desc, then newest first
    ads.sort(key=lambda ad: as_utc(ad.created_at) or now, reverse=True)
    ads.sort(key=lambda ad: ad.priority or 0, reverse=True)
    return ads[:limit]


def public_view(ad: Ad) -> dict:
    doc = ad.to_document()
    return {key: doc[key] for key in PUBLIC_FIELDS}


async def get_ad(db: AsyncSession, ad_id: int) -> Ad:
    ad = await db.get(Ad, ad_id)
    if ad is None:
        raise NotFoundError("Ad not found")
    return ad


async def record_impression(db: AsyncSession, ad_id: int) -> int:
    return await increment(db, Ad, ad_id, "impressions")


async def record_click(db: AsyncSession, ad_id: int) -> Optional[str]:
    """Count a click; returns the ad's redirect URL when it has one."""
    ad = await get_ad(db, ad_id)
    await increment(db, Ad, ad_id, "clicks")
    return ad.redirect_url or None


# ── Analytics ────────────────────────────────────────────────────

def _ctr(clicks: int, impressions: int) -> float:
    return round(clicks / impressions * 100, 2) if impressions else 0


async def analytics(
    db: AsyncSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    placement: Optional[str] = None,
    ad_type: Optional[str] = None,
) -> dict[str, Any]:
    """Totals, per-placement and per-type breakdowns and the top performers."""
    where = []
    if start:
        where.append(Ad.created_at >= start)
    if end:
        where.append(Ad.created_at <= end)
    if placement:
        where.append(Ad.placement == placement)
    if ad_type:
        where.append(Ad.type == ad_type)

    totals = (await db.execute(
        select(
            func.count(Ad.id),
            func.coalesce(func.sum(case((Ad.is_active.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(Ad.impressions), 0),
            func.coalesce(func.sum(Ad.clicks), 0),
            func.coalesce(func.sum(Ad.revenue), 0),
            func.coalesce(func.sum(Ad.budget), 0),
        ).where(*where)
    )).one()
    total_ads, active_ads, impressions, clicks, revenue, budget = totals

    overview = {
        "totalAds": total_ads,
        "activeAds": active_ads,
        "totalImpressions": impressions,
        "totalClicks": clicks,
        "totalRevenue": revenue,
        "totalBudget": budget,
        "ctr": _ctr(clicks, impressions),
    }

    async def breakdown(column, order_by: str) -> list[dict]:
        rows = (await db.execute(
            select(
                column,
                func.count(Ad.id),
                func.coalesce(func.sum(Ad.impressions), 0),
                func.coalesce(func.sum(Ad.clicks), 0),
                func.coalesce(func.sum(Ad.revenue), 0),
            ).where(*where).group_by(column)
        )).all()
        stats = [
            {"key": key, "count": count, "impressions": imp, "clicks": clk, "revenue": rev}
            for key, count, imp, clk, rev in rows
        ]
        stats.sort(key=lambda s: s[order_by], reverse=True)
        return stats

    top = (await db.execute(
        select(Ad).where(*where).order_by(Ad.clicks.desc(), Ad.impressions.desc()).limit(10)
    )).scalars().all()

    return {
        "overview": overview,
        "placementStats": await breakdown(Ad.placement, "impressions"),
        "typeStats": await breakdown(Ad.type, "revenue"),
        "topPerformers": [
            {
                "id": ad.id, "name": ad.name, "type": ad.type, "placement": ad.placement,
                "impressions": ad.impressions, "clicks": ad.clicks, "revenue": ad.revenue,
                "ctr": ad.ctr,
            }
            for ad in top
        ],
    }


# ── Bulk ─────────────────────────────────────────────────────────

async def bulk_action(
    db: AsyncSession,
    ad_ids: list[int],
    action: str,
    data: Optional[dict] = None,
    user_id: Optional[int] = None,
) -> dict[str, int]:
    matched = await db.scalar(select(func.count(Ad.id)).where(Ad.id.in_(ad_ids))) or 0

    if action == "delete":
        result = await db.execute(delete(Ad).where(Ad.id.in_(ad_ids)))
        logger.info(f"Bulk deleted {result.rowcount} ads")
        return {"modifiedCount": result.rowcount, "matchedCount": matched}

    if action in ("activate", "deactivate"):
        values: dict[str, Any] = {"is_active": action == "activate"}
    elif action == "update":
        if not data:
            raise ValidationFailed("Update data is required")
        try:
            values = AdPatch.model_validate(data).model_dump(exclude_unset=True)
        except ValidationError as e:
            raise ValidationFailed(errors=[
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ])
        if not values:
            raise ValidationFailed("Update data is required")
    else:
        raise ValidationFailed("Invalid action")

    values["last_modified_by_id"] = user_id
    result = await db.execute(
        update(Ad).where(Ad.id.in_(ad_ids)).values(**values).execution_options(synchronize_session=False)
    )
    logger.info(f"Bulk {action} applied to {result.rowcount} ads")
    return {"modifiedCount": result.rowcount, "matchedCount": matched}
