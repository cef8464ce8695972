from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from app.auth import Principal, Role, assert_owner_or_admin, get_current_principal, require_role
from app.db import get_db
from app.dependencies import PageParams, get_client_ip
from app.errors import NotFoundError
from app.models import TrackingStatus
from app.schemas import (
    Pagination,
    ShipmentCreate,
    ShipmentListOut,
    ShipmentOut,
    ShipmentStatusUpdate,
    ShipmentWithEventsOut,
    TrackingEventOut,
)
from app.services.audit_service import log_audit
from app.services.tracking_number_service import TrackingNumberConfig, is_valid_tracking_number
from app.services.tracking_service import (
    create_shipment,
    delete_shipment,
    get_shipment,
    list_shipments,
    update_shipment_status,
)

router = APIRouter(prefix='/api/tracking', tags=['tracking'])


def tracking_number_path(tracking_number: str) -> str:
    # Numbers outside the generated format cannot match a stored shipment.
    if not is_valid_tracking_number(tracking_number, TrackingNumberConfig.from_settings()):
        raise NotFoundError('Shipment not found')
    return tracking_number


def _with_events(shipment, events) -> ShipmentWithEventsOut:
    return ShipmentWithEventsOut(
        **ShipmentOut.model_validate(shipment).model_dump(),
        events=[TrackingEventOut.model_validate(event) for event in events],
    )


@router.post('/shipments', response_model=ShipmentOut, status_code=status.HTTP_201_CREATED)
def create_shipment_route(
    body: ShipmentCreate,
    request: Request,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    shipment = create_shipment(
        db,
        carrier=body.carrier,
        carrier_tracking_number=body.carrier_tracking_number,
        estimated_delivery=body.estimated_delivery,
        user_id=body.user_id,
    )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='SHIPMENT_CREATED',
        entity_type='shipment',
        entity_id=shipment.id,
        ip=get_client_ip(request),
        metadata={'tracking_number': shipment.tracking_number},
    )
    db.commit()
    return ShipmentOut.model_validate(shipment)


@router.get('/shipments/{tracking_number}', response_model=ShipmentWithEventsOut)
def get_shipment_route(
    tracking_number: str = Depends(tracking_number_path),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    detail = get_shipment(db, tracking_number)
    assert_owner_or_admin(principal, detail.shipment.user_id)
    return _with_events(detail.shipment, detail.events)


@router.post('/shipments/{tracking_number}/status', response_model=ShipmentOut)
def update_shipment_status_route(
    body: ShipmentStatusUpdate,
    request: Request,
    tracking_number: str = Depends(tracking_number_path),
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    shipment = update_shipment_status(
        db,
        tracking_number,
        body.status,
        description=body.description,
        location=body.location,
        timestamp=body.timestamp,
    )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='SHIPMENT_STATUS_UPDATED',
        entity_type='shipment',
        entity_id=shipment.id,
        ip=get_client_ip(request),
        metadata={'tracking_number': tracking_number, 'status': body.status.value},
    )
    db.commit()
    return ShipmentOut.model_validate(shipment)


@router.get('/shipments', response_model=ShipmentListOut)
def list_shipments_route(
    user_id: str | None = Query(None, alias='userId'),
    shipment_status: TrackingStatus | None = Query(None, alias='status'),
    pagination: PageParams = Depends(),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    # Non-admins only ever see their own shipments.
    if not principal.is_admin:
        user_id = principal.id

    result = list_shipments(
        db,
        user_id=user_id,
        status=shipment_status,
        page=pagination.page,
        limit=pagination.limit,
    )
    return ShipmentListOut(
        shipments=[
            _with_events(item.shipment, [item.latest_event] if item.latest_event else [])
            for item in result.items
        ],
        pagination=Pagination(
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
        ),
    )


@router.delete('/shipments/{tracking_number}', status_code=status.HTTP_204_NO_CONTENT)
def delete_shipment_route(
    request: Request,
    tracking_number: str = Depends(tracking_number_path),
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    delete_shipment(db, tracking_number)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='SHIPMENT_DELETED',
        entity_type='shipment',
        ip=get_client_ip(request),
        metadata={'tracking_number': tracking_number},
    )
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
