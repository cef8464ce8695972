from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from app.auth import Principal, Role, assert_owner_or_admin, get_current_principal, require_role
from app.db import get_db
from app.dependencies import PageParams, get_client_ip
from app.models import LeadStatus
from app.schemas import (
    LeadConvert,
    LeadCreate,
    LeadListOut,
    LeadOut,
    LeadStatsOut,
    LeadStatusUpdate,
    LeadUpdate,
    Pagination,
    ShipmentOut,
)
from app.services.audit_service import log_audit
from app.services.lead_service import (
    convert_to_shipment,
    create_lead,
    delete_lead,
    get_lead,
    get_stats,
    list_leads,
    update_lead,
    update_lead_status,
)

router = APIRouter(prefix='/api/leads', tags=['leads'])


@router.post('', response_model=LeadOut, status_code=status.HTTP_201_CREATED)
def create_lead_route(
    body: LeadCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    lead = create_lead(db, **body.model_dump(), client_id=principal.id)
    db.commit()
    return LeadOut.model_validate(lead)


@router.get('/stats', response_model=LeadStatsOut)
def lead_stats_route(
    _: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    return LeadStatsOut(**get_stats(db))


@router.get('/{lead_id}', response_model=LeadOut)
def get_lead_route(
    lead_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    lead = get_lead(db, lead_id)
    assert_owner_or_admin(principal, lead.client_id)
    return LeadOut.model_validate(lead)


@router.patch('/{lead_id}/status', response_model=LeadOut)
def update_lead_status_route(
    lead_id: str,
    body: LeadStatusUpdate,
    _: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    lead = update_lead_status(db, lead_id, body.status, assigned_to=body.assigned_to)
    db.commit()
    return LeadOut.model_validate(lead)


@router.put('/{lead_id}', response_model=LeadOut)
def update_lead_route(
    lead_id: str,
    body: LeadUpdate,
    _: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    lead = update_lead(db, lead_id, body.model_dump(exclude_unset=True))
    db.commit()
    return LeadOut.model_validate(lead)


@router.delete('/{lead_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_lead_route(
    lead_id: str,
    _: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    delete_lead(db, lead_id)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post('/{lead_id}/convert', response_model=ShipmentOut)
def convert_lead_route(
    lead_id: str,
    body: LeadConvert,
    request: Request,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    shipment = convert_to_shipment(
        db,
        lead_id,
        carrier=body.carrier,
        carrier_tracking_number=body.carrier_tracking_number,
        estimated_delivery=body.estimated_delivery,
    )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='LEAD_CONVERTED',
        entity_type='lead',
        entity_id=lead_id,
        ip=get_client_ip(request),
        metadata={'tracking_number': shipment.tracking_number},
    )
    db.commit()
    return ShipmentOut.model_validate(shipment)


@router.get('', response_model=LeadListOut)
def list_leads_route(
    lead_status: LeadStatus | None = Query(None, alias='status'),
    assigned_to: str | None = Query(None, alias='assignedTo'),
    pagination: PageParams = Depends(),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    client_id = None
    if not principal.is_admin:
        client_id = principal.id
        assigned_to = None

    result = list_leads(
        db,
        status=lead_status,
        assigned_to=assigned_to,
        client_id=client_id,
        page=pagination.page,
        limit=pagination.limit,
    )
    return LeadListOut(
        leads=[LeadOut.model_validate(lead) for lead in result.items],
        pagination=Pagination(
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
        ),
    )
