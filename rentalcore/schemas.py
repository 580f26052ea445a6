# Pydantic models (request/response DTOs) used by the API layer.
# Keep models minimal and serializable; invariants are enforced by the service modules.
import os
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field, field_validator, model_validator

from .clock import as_utc, days_until, is_active

CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:3000").rstrip("/")

Role = Literal["ADMIN", "PROPERTY_MANAGER", "PROPERTY_OWNER"]
SignupRole = Literal["PROPERTY_MANAGER", "PROPERTY_OWNER"]
PropertyStatus = Literal["AVAILABLE", "RESERVED", "RENTED"]
ManualPropertyStatus = Literal["AVAILABLE", "RESERVED"]
PaymentFrequency = Literal["MONTHLY", "QUARTERLY", "SEMI_ANNUALLY", "ANNUALLY"]
MaintenanceStatus = Literal["PENDING", "IN_PROGRESS", "COMPLETED", "CANCELLED"]


def _strip(v):
    if isinstance(v, str):
        v = v.strip()
    return v


def _lower_email(v):
    if isinstance(v, str):
        v = v.strip().lower()
    return v


def _utc(v):
    if isinstance(v, datetime):
        return as_utc(v)
    return v


# Authentication and users
class UserRead(BaseModel):
    id: int
    email: EmailStr
    role: Role
    first_name: str
    last_name: str
    phone: Optional[str] = None
    national_id: Optional[str] = None
    is_blocked: bool = False

    model_config = ConfigDict(from_attributes=True)


# Request payload for staff registration; admins are created from the command line
class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: SignupRole = "PROPERTY_MANAGER"
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=32)
    national_id: Optional[str] = Field(default=None, min_length=1, max_length=32)

    normalize_email = field_validator("email", mode="before")(_lower_email)
    strip_names = field_validator("first_name", "last_name", "national_id", mode="before")(_strip)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)

    normalize_email = field_validator("email", mode="before")(_lower_email)


# OAuth2-style token response bundled with the current user profile
class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead


# Estates
class EstateBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    region: Optional[str] = Field(default=None, max_length=100)
    address: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None

    strip_name = field_validator("name", mode="before")(_strip)


class EstateCreate(EstateBase):
    pass


class EstateUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    region: Optional[str] = Field(default=None, max_length=100)
    address: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None


class EstateRead(EstateBase):
    id: int
    manager_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


# Properties
class PropertyBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    property_type: str = Field(default="APARTMENT", min_length=1, max_length=50)
    description: Optional[str] = None
    bedrooms: Optional[int] = Field(default=None, ge=0)
    area: Optional[float] = Field(default=None, gt=0)
    city: Optional[str] = Field(default=None, max_length=100)

    strip_name = field_validator("name", mode="before")(_strip)


class PropertyCreate(PropertyBase):
    owner_id: int = Field(..., ge=1)
    estate_id: Optional[int] = Field(default=None, ge=1)
    status: ManualPropertyStatus = "AVAILABLE"


class PropertyUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    property_type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = None
    bedrooms: Optional[int] = Field(default=None, ge=0)
    area: Optional[float] = Field(default=None, gt=0)
    city: Optional[str] = Field(default=None, max_length=100)
    owner_id: Optional[int] = Field(default=None, ge=1)
    estate_id: Optional[int] = Field(default=None, ge=1)


class PropertyStatusUpdate(BaseModel):
    status: ManualPropertyStatus


class PropertyRead(PropertyBase):
    id: int
    owner_id: int
    manager_id: Optional[int] = None
    estate_id: Optional[int] = None
    status: PropertyStatus

    model_config = ConfigDict(from_attributes=True)


# Tenants
class TenantBase(BaseModel):
    national_id: str = Field(..., min_length=1, max_length=32)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=32)
    birth_date: Optional[datetime] = None

    strip_fields = field_validator("national_id", "first_name", "last_name", mode="before")(_strip)
    utc_birth = field_validator("birth_date", mode="after")(_utc)


class TenantCreate(TenantBase):
    email: Optional[EmailStr] = None

    normalize_email = field_validator("email", mode="before")(_lower_email)


class TenantUpdate(BaseModel):
    national_id: Optional[str] = Field(default=None, min_length=1, max_length=32)
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=32)
    email: Optional[EmailStr] = None
    birth_date: Optional[datetime] = None

    normalize_email = field_validator("email", mode="before")(_lower_email)
    utc_birth = field_validator("birth_date", mode="after")(_utc)


class TenantRead(TenantBase):
    id: int
    email: str
    manager_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class TenantStats(BaseModel):
    total_contracts: int
    active_contracts: int
    expired_contracts: int
    total_maintenance_requests: int
    pending_maintenance_requests: int


# Contracts
class ContractCreate(BaseModel):
    property_id: int = Field(..., ge=1)
    tenant_id: int = Field(..., ge=1)
    price: float = Field(..., gt=0)
    start_date: datetime
    end_date: datetime
    payment_frequency: PaymentFrequency

    utc_dates = field_validator("start_date", "end_date", mode="after")(_utc)

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class ContractUpdate(BaseModel):
    property_id: Optional[int] = Field(default=None, ge=1)
    tenant_id: Optional[int] = Field(default=None, ge=1)
    price: Optional[float] = Field(default=None, gt=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    payment_frequency: Optional[PaymentFrequency] = None

    utc_dates = field_validator("start_date", "end_date", mode="after")(_utc)


class ContractRead(BaseModel):
    id: int
    property_id: int
    tenant_id: int
    manager_id: Optional[int] = None
    price: float
    start_date: datetime
    end_date: datetime
    payment_frequency: PaymentFrequency
    document_url: Optional[str] = None
    tenant_portal_token: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    utc_dates = field_validator("start_date", "end_date", mode="after")(_utc)

    @computed_field
    @property
    def is_active(self) -> bool:
        return is_active(self.end_date)

    @computed_field
    @property
    def days_until_expiration(self) -> int:
        return days_until(self.end_date)

    @computed_field
    @property
    def tenant_portal_link(self) -> Optional[str]:
        if not self.tenant_portal_token:
            return None
        return f"{CLIENT_URL}/tenant-portal/{self.tenant_portal_token}"


# Maintenance
class MaintenanceBase(BaseModel):
    title: str = Field(..., min_length=3, max_length=255)
    description: str = Field(..., min_length=10)
    images: List[str] = Field(default_factory=list)

    strip_text = field_validator("title", "description", mode="before")(_strip)


# Portal requests take the contract from the token
class MaintenancePortalCreate(MaintenanceBase):
    pass


class MaintenanceCreate(MaintenanceBase):
    contract_id: int = Field(..., ge=1)


class MaintenanceUpdate(BaseModel):
    status: Optional[MaintenanceStatus] = None
    internal_notes: Optional[str] = None

    @model_validator(mode="after")
    def check_not_empty(self):
        if self.status is None and self.internal_notes is None:
            raise ValueError("Provide status or internal_notes")
        return self


class MaintenanceRead(MaintenanceBase):
    id: int
    contract_id: int
    tenant_id: int
    status: MaintenanceStatus
    internal_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Tenant-facing view: no staff notes
class PortalMaintenanceRead(MaintenanceBase):
    id: int
    contract_id: int
    status: MaintenanceStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MaintenanceStats(BaseModel):
    total: int
    pending: int
    in_progress: int
    completed: int
    cancelled: int


# Tenant portal
class PortalTenantRead(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PortalContractRead(BaseModel):
    id: int
    property_id: int
    price: float
    start_date: datetime
    end_date: datetime
    payment_frequency: PaymentFrequency
    document_url: Optional[str] = None
    maintenance_requests: List[PortalMaintenanceRead] = Field(default_factory=list)

    utc_dates = field_validator("start_date", "end_date", mode="after")(_utc)

    @computed_field
    @property
    def is_active(self) -> bool:
        return is_active(self.end_date)

    @computed_field
    @property
    def days_until_expiration(self) -> int:
        return days_until(self.end_date)


class PortalContractsResponse(BaseModel):
    tenant: PortalTenantRead
    contracts: List[PortalContractRead]


# Audit
class AuditLogRead(BaseModel):
    id: int
    actor_id: Optional[int] = None
    actor_role: Optional[str] = None
    action: str
    entity_type: str
    entity_id: Optional[int] = None
    details: Optional[dict] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessageResponse(BaseModel):
    message: str
