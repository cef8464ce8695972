from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from app.errors import InvalidPageError, InvalidTransitionError, NotFoundError
from app.models import Lead, LeadStatus, Shipment
from app.services.tracking_number_service import TrackingNumberConfig
from app.services.tracking_service import create_shipment

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    'name',
    'email',
    'phone',
    'origin_country',
    'destination_country',
    'parcel_type',
    'weight',
    'notes',
}


@dataclass
class LeadPage:
    items: list[Lead]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def _get_lead_row(db: Session, lead_id: str, *, for_update: bool = False) -> Lead:
    query = select(Lead).where(Lead.id == lead_id)
    if for_update:
        query = query.with_for_update()
    lead = db.execute(query).scalar_one_or_none()
    if not lead:
        raise NotFoundError('Lead not found')
    return lead


def create_lead(
    db: Session,
    *,
    name: str,
    email: str,
    phone: str,
    origin_country: str,
    destination_country: str,
    parcel_type: str,
    weight: Decimal,
    notes: str = '',
    client_id: str | None = None,
) -> Lead:
    lead = Lead(
        name=name.strip(),
        email=email.strip(),
        phone=phone.strip(),
        origin_country=origin_country.upper(),
        destination_country=destination_country.upper(),
        parcel_type=parcel_type.strip(),
        weight=Decimal(weight),
        notes=notes or '',
        client_id=client_id,
        status=LeadStatus.NEW,
    )
    db.add(lead)
    db.flush()
    logger.info('Created lead %s', lead.id)
    return lead


def get_lead(db: Session, lead_id: str) -> Lead:
    return _get_lead_row(db, lead_id)


def update_lead(db: Session, lead_id: str, changes: dict) -> Lead:
    lead = _get_lead_row(db, lead_id)
    for field, value in changes.items():
        if field not in EDITABLE_FIELDS or value is None:
            continue
        if field == 'weight':
            value = Decimal(value)
        elif field in {'origin_country', 'destination_country'}:
            value = value.upper()
        setattr(lead, field, value)
    db.flush()
    return lead


def update_lead_status(
    db: Session,
    lead_id: str,
    status: LeadStatus | str,
    *,
    assigned_to: str | None = None,
) -> Lead:
    status = LeadStatus(status)
    lead = _get_lead_row(db, lead_id, for_update=True)
    if lead.status == LeadStatus.CONVERTED and status != LeadStatus.CONVERTED:
        raise InvalidTransitionError('Converted leads cannot change status')
    if status == LeadStatus.CONVERTED and lead.status != LeadStatus.CONVERTED:
        raise InvalidTransitionError('Use lead conversion to mark a lead as converted')

    lead.status = status
    if assigned_to:
        lead.assigned_to = assigned_to
    db.flush()
    return lead


def delete_lead(db: Session, lead_id: str) -> None:
    lead = _get_lead_row(db, lead_id)
    db.delete(lead)
    db.flush()


def list_leads(
    db: Session,
    *,
    status: LeadStatus | str | None = None,
    assigned_to: str | None = None,
    client_id: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> LeadPage:
    if page < 1:
        raise InvalidPageError('Page must be at least 1')
    if limit < 1:
        raise InvalidPageError('Limit must be at least 1')

    conditions = []
    if status:
        conditions.append(Lead.status == LeadStatus(status))
    if assigned_to:
        conditions.append(Lead.assigned_to == assigned_to)
    if client_id:
        conditions.append(Lead.client_id == client_id)

    query = select(Lead).order_by(Lead.created_at.desc(), Lead.id.desc())
    count_query = select(func.count()).select_from(Lead)
    if conditions:
        query = query.where(and_(*conditions))
        count_query = count_query.where(and_(*conditions))

    leads = db.execute(query.offset((page - 1) * limit).limit(limit)).scalars().all()
    total = db.execute(count_query).scalar_one()
    return LeadPage(items=list(leads), total=total, page=page, limit=limit)


def get_stats(db: Session) -> dict:
    rows = db.execute(select(Lead.status, func.count()).group_by(Lead.status)).all()
    by_status = {LeadStatus(row[0]): row[1] for row in rows}
    return {
        'total_leads': sum(by_status.values()),
        'new_leads': by_status.get(LeadStatus.NEW, 0),
        'converted_leads': by_status.get(LeadStatus.CONVERTED, 0),
    }


def convert_to_shipment(
    db: Session,
    lead_id: str,
    *,
    carrier: str | None = None,
    carrier_tracking_number: str | None = None,
    estimated_delivery: datetime | None = None,
    config: TrackingNumberConfig | None = None,
) -> Shipment:
    """Create the shipment for a lead and mark the lead converted.

    The lead row is locked before its status is checked, so two concurrent
    conversions cannot both see it unconverted. The shipment is owned by the
    lead's client, never by the caller.
    """
    with db.begin_nested():
        lead = _get_lead_row(db, lead_id, for_update=True)
        if lead.status == LeadStatus.CONVERTED:
            raise InvalidTransitionError('Lead already converted')

        shipment = create_shipment(
            db,
            carrier=carrier,
            carrier_tracking_number=carrier_tracking_number,
            estimated_delivery=estimated_delivery,
            user_id=lead.client_id,
            config=config,
        )
        lead.status = LeadStatus.CONVERTED
        db.flush()

    logger.info('Converted lead %s to shipment %s', lead_id, shipment.tracking_number)
    return shipment
