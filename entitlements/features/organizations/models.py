"""
Tenant state models.

Per-organization mutable state: the current subscription, the module
activation ledger and user memberships.
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, Boolean, Enum as SQLEnum, DateTime, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column
import enum

from entitlements.core.database.base import Base, TimestampMixin, generate_ulid


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class ActivationStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Organization(Base, TimestampMixin):
    """
    Tenant: the billing and access boundary.
    """
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name!r})>"


class Subscription(Base, TimestampMixin):
    """
    Current subscription of an organization (one row per organization).

    Mutated by billing events; history is kept by the billing system.
    """
    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True
    )
    plan_code: Mapped[str] = mapped_column(String(50), ForeignKey("plans.code"), nullable=False)

    status: Mapped[SubscriptionStatus] = mapped_column(
        SQLEnum(SubscriptionStatus),
        default=SubscriptionStatus.ACTIVE,
        nullable=False,
        index=True
    )
    period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    trial_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Subscription(org_id={self.organization_id}, plan={self.plan_code}, status={self.status})>"


class ModuleActivation(Base, TimestampMixin):
    """
    Activation ledger row. Unique per (organization, module).

    Only the module activation engine writes to this table.
    """
    __tablename__ = "module_activations"
    __table_args__ = (
        UniqueConstraint("organization_id", "module_code", name="uq_module_activation_org_module"),
        Index("ix_module_activations_org_status", "organization_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False
    )
    module_code: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("modules.code", ondelete="CASCADE"),
        nullable=False
    )

    status: Mapped[ActivationStatus] = mapped_column(
        SQLEnum(ActivationStatus),
        default=ActivationStatus.ACTIVE,
        nullable=False
    )

    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    activated_by_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    deactivated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deactivated_by_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<ModuleActivation(org_id={self.organization_id}, module={self.module_code}, status={self.status})>"


class OrganizationMembership(Base, TimestampMixin):
    """
    Assigns a user to an organization with a role.

    A user may belong to several organizations with different roles,
    with exactly one membership row per (user, organization).
    """
    __tablename__ = "organization_memberships"
    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", name="uq_membership_user_org"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    organization_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role_id: Mapped[str] = mapped_column(String(26), ForeignKey("roles.id"), nullable=False)

    # Member-level override of the role flag
    is_super_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<OrganizationMembership(user_id={self.user_id}, org_id={self.organization_id}, role_id={self.role_id})>"
