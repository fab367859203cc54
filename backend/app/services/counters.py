"""Atomic counter increments (views, likes, downloads, impressions, clicks)."""

import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import NotFoundError

logger = logging.getLogger(__name__)


def _label(model) -> str:
    return getattr(model, "content_type", "") or model.__name__


async def increment(db: AsyncSession, model, item_id: int, counter: str, by: int = 1) -> int:
    """``counter = counter + by`` in a single UPDATE; returns the new value.

    Concurrent calls never lose an increment. Validation is bypassed.
    """
    column = getattr(model, counter)
    stmt = (
        update(model)
        .where(model.id == item_id)
        .values({counter: column + by})
        .returning(column)
    )
    value = (await db.execute(stmt)).scalar_one_or_none()
    if value is None:
        raise NotFoundError(f"{_label(model)} not found")
    logger.debug(f"{model.__tablename__}#{item_id} {counter} -> {value}")
    return value
