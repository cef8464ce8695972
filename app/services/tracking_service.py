from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import AllocationExhaustedError, InvalidPageError, NotFoundError
from app.models import Shipment, TrackingEvent, TrackingStatus, User
from app.services.tracking_number_service import (
    TrackingNumberConfig,
    allocate_tracking_number,
    tracking_number_exists,
)

logger = logging.getLogger(__name__)


@dataclass
class ShipmentDetail:
    shipment: Shipment
    events: list[TrackingEvent]


@dataclass
class ShipmentSummary:
    shipment: Shipment
    latest_event: TrackingEvent | None


@dataclass
class ShipmentPage:
    items: list[ShipmentSummary]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _to_utc(value: datetime | None) -> datetime | None:
    # Stored as UTC; offset-less input is taken to be UTC already.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _get_shipment_row(db: Session, tracking_number: str, *, for_update: bool = False) -> Shipment:
    query = select(Shipment).where(Shipment.tracking_number == tracking_number)
    if for_update:
        query = query.with_for_update()
    shipment = db.execute(query).scalar_one_or_none()
    if not shipment:
        raise NotFoundError('Shipment not found')
    return shipment


def create_shipment(
    db: Session,
    *,
    carrier: str | None = None,
    carrier_tracking_number: str | None = None,
    estimated_delivery: datetime | None = None,
    user_id: str | None = None,
    config: TrackingNumberConfig | None = None,
) -> Shipment:
    """Insert a PENDING shipment under a freshly allocated tracking number.

    The allocator only checks for collisions; two requests can still pick the
    same number between that check and the insert. The insert runs in a
    savepoint so a unique violation on tracking_number can be retried with a
    new number without losing the caller's transaction.
    """
    if user_id is not None and db.get(User, user_id) is None:
        raise NotFoundError('User not found')

    config = config or TrackingNumberConfig.from_settings()
    for attempt in range(1, config.max_attempts + 1):
        tracking_number = allocate_tracking_number(db, config)
        shipment = Shipment(
            tracking_number=tracking_number,
            carrier=carrier,
            carrier_tracking_number=carrier_tracking_number,
            estimated_delivery=_to_utc(estimated_delivery),
            user_id=user_id,
            status=TrackingStatus.PENDING,
        )
        try:
            with db.begin_nested():
                db.add(shipment)
                db.flush()
        except IntegrityError:
            if not tracking_number_exists(db, tracking_number):
                raise
            logger.warning(
                'Tracking number %s taken by a concurrent insert (attempt %s/%s)',
                tracking_number,
                attempt,
                config.max_attempts,
            )
            continue
        logger.info('Created shipment %s', shipment.tracking_number)
        return shipment

    raise AllocationExhaustedError(
        f'Failed to insert shipment with a unique tracking number after {config.max_attempts} attempts'
    )


def update_shipment_status(
    db: Session,
    tracking_number: str,
    status: TrackingStatus | str,
    *,
    description: str,
    location: str | None = None,
    timestamp: datetime | None = None,
) -> Shipment:
    status = TrackingStatus(status)
    effective_at = _to_utc(timestamp) or _now()

    # Status and event are written in one savepoint so neither is visible without the other.
    with db.begin_nested():
        shipment = _get_shipment_row(db, tracking_number, for_update=True)
        shipment.status = status
        if status == TrackingStatus.DELIVERED:
            # Left in place by later transitions such as RETURNED.
            shipment.actual_delivery = effective_at
        db.flush()

        db.add(
            TrackingEvent(
                shipment_id=shipment.id,
                status=status,
                description=description,
                location=location,
                timestamp=effective_at,
            )
        )
        db.flush()

    logger.info('Shipment %s moved to %s', tracking_number, status.value)
    return shipment


def get_shipment(db: Session, tracking_number: str) -> ShipmentDetail:
    shipment = _get_shipment_row(db, tracking_number)
    events = db.execute(
        select(TrackingEvent)
        .where(TrackingEvent.shipment_id == shipment.id)
        .order_by(TrackingEvent.timestamp.desc(), TrackingEvent.created_at.desc())
    ).scalars().all()
    return ShipmentDetail(shipment=shipment, events=list(events))


def _latest_events_by_shipment(db: Session, shipment_ids: list[str]) -> dict[str, TrackingEvent]:
    latest: dict[str, TrackingEvent] = {}
    if not shipment_ids:
        return latest
    rows = db.execute(
        select(TrackingEvent)
        .where(TrackingEvent.shipment_id.in_(shipment_ids))
        .order_by(
            TrackingEvent.shipment_id.asc(),
            TrackingEvent.timestamp.desc(),
            TrackingEvent.created_at.desc(),
        )
    ).scalars().all()
    for event in rows:
        latest.setdefault(event.shipment_id, event)
    return latest


def list_shipments(
    db: Session,
    *,
    user_id: str | None = None,
    status: TrackingStatus | str | None = None,
    page: int = 1,
    limit: int = 20,
) -> ShipmentPage:
    if page < 1:
        raise InvalidPageError('Page must be at least 1')
    if limit < 1:
        raise InvalidPageError('Limit must be at least 1')

    conditions = []
    if user_id:
        conditions.append(Shipment.user_id == user_id)
    if status:
        conditions.append(Shipment.status == TrackingStatus(status))

    query = select(Shipment).order_by(Shipment.created_at.desc(), Shipment.id.desc())
    count_query = select(func.count()).select_from(Shipment)
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    shipments = db.execute(query.offset((page - 1) * limit).limit(limit)).scalars().all()
    total = db.execute(count_query).scalar_one()

    latest = _latest_events_by_shipment(db, [shipment.id for shipment in shipments])
    return ShipmentPage(
        items=[ShipmentSummary(shipment=shipment, latest_event=latest.get(shipment.id)) for shipment in shipments],
        total=total,
        page=page,
        limit=limit,
    )


def delete_shipment(db: Session, tracking_number: str) -> None:
    shipment = _get_shipment_row(db, tracking_number)
    db.delete(shipment)
    db.flush()
    logger.info('Deleted shipment %s', tracking_number)
