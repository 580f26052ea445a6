# SQLAlchemy ORM models for the rental domain (users, estates, properties, tenants, contracts, maintenance, audit).
# Keep business logic out of models; invariants live in the service modules.
import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import declarative_mixin

from .db import Base


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    PROPERTY_MANAGER = "PROPERTY_MANAGER"
    PROPERTY_OWNER = "PROPERTY_OWNER"


class PropertyStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    RENTED = "RENTED"


class PaymentFrequency(str, enum.Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    SEMI_ANNUALLY = "SEMI_ANNUALLY"
    ANNUALLY = "ANNUALLY"


class MaintenanceStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


@declarative_mixin
class TimestampMixin:
    """Common UTC-aware timestamps automatically managed by the database.

    - created_at: set on insert
    - updated_at: set on insert and updated on each modification
    """
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class User(Base, TimestampMixin):
    """Staff account.

    Roles:
    - ADMIN: sees and manages everything
    - PROPERTY_MANAGER: manages the estates, properties, tenants and contracts they created
    - PROPERTY_OWNER: read access to their own properties and the leases on them
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, index=True)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    phone = Column(String(32), nullable=True)
    national_id = Column(String(32), nullable=True, unique=True, index=True)
    is_blocked = Column(Boolean, nullable=False, default=False)


class Estate(Base, TimestampMixin):
    """Parent estate (building or compound) grouping properties."""
    __tablename__ = "estates"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    city = Column(String(100), nullable=True)
    region = Column(String(100), nullable=True)
    address = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)


class Property(Base, TimestampMixin):
    """Rentable unit.

    `status` is RENTED exactly when an active contract references the property;
    AVAILABLE and RESERVED are otherwise set by staff.
    """
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    estate_id = Column(Integer, ForeignKey("estates.id"), nullable=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    property_type = Column(String(50), nullable=False, default="APARTMENT")
    description = Column(Text, nullable=True)
    bedrooms = Column(Integer, nullable=True)
    area = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    city = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default=PropertyStatus.AVAILABLE.value, index=True)


class Tenant(Base, TimestampMixin):
    """Lease holder. Not a login principal; reaches the portal through a contract token."""
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    national_id = Column(String(32), nullable=False, unique=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(32), nullable=True)
    birth_date = Column(DateTime(timezone=True), nullable=True)


class Contract(Base, TimestampMixin):
    """Lease of one property to one tenant.

    At most one contract per property may be active (end_date >= now) at any instant.
    `tenant_portal_token` is minted once at creation and never rotated.
    """
    __tablename__ = "contracts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    price = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    payment_frequency = Column(String(20), nullable=False)
    tenant_portal_token = Column(Text, nullable=True)
    document_url = Column(String(500), nullable=True)

    # Exclusivity checks count active contracts per property by end date
    __table_args__ = (
        Index("ix_contracts_property_end", "property_id", "end_date"),
        Index("ix_contracts_tenant_end", "tenant_id", "end_date"),
    )


class MaintenanceRequest(Base, TimestampMixin):
    """Repair request raised against a contract; status moves only through the maintenance state machine."""
    __tablename__ = "maintenance_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    contract_id = Column(Integer, ForeignKey("contracts.id"), nullable=False, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    images = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default=MaintenanceStatus.PENDING.value, index=True)
    internal_notes = Column(Text, nullable=True)


class AuditLog(Base):
    """Append-only record of staff mutations. Written best-effort."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    actor_id = Column(Integer, nullable=True, index=True)
    actor_role = Column(String(20), nullable=True)
    action = Column(String(20), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )
