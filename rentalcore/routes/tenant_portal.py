# Tenant portal: token-authenticated endpoints for lease holders without a login account.
# The token is accepted as a Bearer header or a ?token= query parameter (links sent by email).
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..errors import AccessDenied, AuthenticationRequired, NotFound
from ..portal_tokens import PortalClaims, get_portal_token_codec
from ..rate_limit import rate_limit
from .auth import bearer_token_from_auth_header
from .maintenance import open_request

router = APIRouter()


def get_portal_claims(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    token: Optional[str] = Query(default=None),
) -> PortalClaims:
    raw = bearer_token_from_auth_header(authorization) if authorization else token
    if not raw:
        raise AuthenticationRequired("Tenant portal token missing")
    return get_portal_token_codec().verify(raw)


def _load_tenant(db: Session, claims: PortalClaims) -> models.Tenant:
    tenant = db.query(models.Tenant).filter(models.Tenant.national_id == claims.tenant_national_id).first()
    if tenant is None:
        raise NotFound("Tenant not found")
    return tenant


def _portal_contract(db: Session, contract: models.Contract) -> schemas.PortalContractRead:
    requests = (
        db.query(models.MaintenanceRequest)
        .filter(models.MaintenanceRequest.contract_id == contract.id)
        .order_by(models.MaintenanceRequest.created_at.desc(), models.MaintenanceRequest.id.desc())
        .all()
    )
    return schemas.PortalContractRead(
        id=contract.id,
        property_id=contract.property_id,
        price=contract.price,
        start_date=contract.start_date,
        end_date=contract.end_date,
        payment_frequency=contract.payment_frequency,
        document_url=contract.document_url,
        maintenance_requests=[schemas.PortalMaintenanceRead.model_validate(r) for r in requests],
    )


@router.get("/tenant-portal/contracts", response_model=schemas.PortalContractsResponse)
def my_contracts(db: Session = Depends(get_db), claims: PortalClaims = Depends(get_portal_claims)):
    """Tenant profile plus every contract held by the token's tenant, newest first."""
    tenant = _load_tenant(db, claims)
    contracts = (
        db.query(models.Contract)
        .filter(models.Contract.tenant_id == tenant.id)
        .order_by(models.Contract.start_date.desc(), models.Contract.id.desc())
        .all()
    )
    return schemas.PortalContractsResponse(
        tenant=schemas.PortalTenantRead.model_validate(tenant),
        contracts=[_portal_contract(db, c) for c in contracts],
    )


@router.get("/tenant-portal/contracts/{contract_id}", response_model=schemas.PortalContractRead)
def my_contract(
    contract_id: int,
    db: Session = Depends(get_db),
    claims: PortalClaims = Depends(get_portal_claims),
):
    tenant = _load_tenant(db, claims)
    contract = db.get(models.Contract, contract_id)
    if contract is None:
        raise NotFound("Contract not found")
    if contract.tenant_id != tenant.id:
        raise AccessDenied("Access denied: this contract belongs to another tenant")
    return _portal_contract(db, contract)


@router.post(
    "/tenant-portal/maintenance",
    response_model=schemas.PortalMaintenanceRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("portal"))],
)
def submit_request(
    payload: schemas.MaintenancePortalCreate,
    db: Session = Depends(get_db),
    claims: PortalClaims = Depends(get_portal_claims),
):
    """
    Open a PENDING request on the token's contract.

    The token outlives a deleted contract, so the contract is always reloaded:
    - 404 when the contract no longer exists
    - 403 when the contract is no longer held by the token's tenant
    - 409 when the lease has ended
    """
    contract = db.get(models.Contract, claims.contract_id)
    if contract is None:
        raise NotFound("Contract not found")
    tenant = _load_tenant(db, claims)
    if contract.tenant_id != tenant.id:
        raise AccessDenied("Access denied: this contract belongs to another tenant")
    return open_request(db, contract, tenant.id, payload)
