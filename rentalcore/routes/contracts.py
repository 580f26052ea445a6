# Contract endpoints. The lifecycle rules (exclusivity, property status, portal token) live in ContractLifecycleManager.
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..audit import record_audit
from ..contracts import ContractLifecycleManager, get_contract_manager
from ..db import get_db
from .. import models, schemas
from ..rate_limit import rate_limit
from .auth import get_current_user, require_staff_writer

router = APIRouter()


@router.get("/contracts", response_model=List[schemas.ContractRead])
def list_contracts(
    property_id: Optional[int] = Query(default=None, ge=1),
    tenant_id: Optional[int] = Query(default=None, ge=1),
    owner_id: Optional[int] = Query(default=None, ge=1),
    status_filter: Literal["active", "expired", "all"] = Query(default="all", alias="status"),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    manager: ContractLifecycleManager = Depends(get_contract_manager),
):
    return manager.list(
        db,
        user.role,
        user.id,
        property_id=property_id,
        tenant_id=tenant_id,
        owner_id=owner_id,
        status=status_filter,
    )


@router.get("/contracts/{contract_id}", response_model=schemas.ContractRead)
def get_contract(
    contract_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    manager: ContractLifecycleManager = Depends(get_contract_manager),
):
    return manager.get(db, contract_id, user.role, user.id)


@router.post(
    "/contracts",
    response_model=schemas.ContractRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_contract(
    payload: schemas.ContractCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_staff_writer),
    manager: ContractLifecycleManager = Depends(get_contract_manager),
):
    """
    Lease a property to a tenant.

    Responses:
    - 201 with the contract, its document URL and tenant portal link
    - 409 when the property already has an active contract
    - 429 when another request is writing the same property
    """
    contract = manager.create(db, payload, user.role, user.id)
    record_audit(user, "CREATE", "contract", contract.id, {"property_id": contract.property_id})
    return contract


@router.put("/contracts/{contract_id}", response_model=schemas.ContractRead, dependencies=[Depends(rate_limit("write"))])
def update_contract(
    contract_id: int,
    payload: schemas.ContractUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_staff_writer),
    manager: ContractLifecycleManager = Depends(get_contract_manager),
):
    contract = manager.update(db, contract_id, payload, user.role, user.id)
    record_audit(user, "UPDATE", "contract", contract.id, {"fields": sorted(payload.model_dump(exclude_unset=True))})
    return contract


@router.delete(
    "/contracts/{contract_id}",
    response_model=schemas.MessageResponse,
    dependencies=[Depends(rate_limit("write"))],
)
def delete_contract(
    contract_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_staff_writer),
    manager: ContractLifecycleManager = Depends(get_contract_manager),
):
    property_id = manager.delete(db, contract_id, user.role, user.id)
    record_audit(user, "DELETE", "contract", contract_id, {"property_id": property_id})
    return {"message": "Contract deleted successfully"}
