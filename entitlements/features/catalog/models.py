"""
Catalog models: plans, modules, permissions and roles.

Seeded reference data, read-only at runtime from the engine's perspective.
"""
from decimal import Decimal
from typing import Any, Dict
from sqlalchemy import String, ForeignKey, Table, Column, JSON, Text, Integer, Boolean, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from entitlements.core.database.base import Base, TimestampMixin, generate_ulid


# ============================================================================
# Association Tables
# ============================================================================

# Module dependency edges: module_code requires required_module_code
module_dependencies = Table(
    "module_dependencies",
    Base.metadata,
    Column("module_code", String(50), ForeignKey("modules.code", ondelete="CASCADE"), primary_key=True),
    Column("required_module_code", String(50), ForeignKey("modules.code", ondelete="CASCADE"), primary_key=True),
)

# Role-Permission relationship
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


# ============================================================================
# Core Models
# ============================================================================

class Plan(Base, TimestampMixin):
    """
    Subscription tier defining resource ceilings.

    Examples: free (1 module), starter (2 modules), pro (5 modules)
    """
    __tablename__ = "plans"

    code: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    max_modules: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_branches: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    price_usd_month: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    trial_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Additional limits and feature switches, e.g. {"max_users": 10}
    features: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Plan(code={self.code}, max_modules={self.max_modules})>"


class Module(Base, TimestampMixin):
    """
    Product feature area that can be activated per organization.

    Core modules are always on and do not consume plan slots.
    Dependency edges must form a DAG; see catalog.load_catalog. Edges are
    read through load_module_requirements, never through required_modules.
    """
    __tablename__ = "modules"

    code: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_core: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rank: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    required_modules: Mapped[list["Module"]] = relationship(
        "Module",
        secondary=module_dependencies,
        primaryjoin=lambda: Module.code == module_dependencies.c.module_code,
        secondaryjoin=lambda: Module.code == module_dependencies.c.required_module_code,
        lazy="raise",
    )

    def __repr__(self) -> str:
        return f"<Module(code={self.code}, core={self.is_core})>"


class Permission(Base, TimestampMixin):
    """
    Fine-grained action right.

    module_code null = global permission (e.g. "modules.manage");
    otherwise the permission is only effective while its module is active.
    """
    __tablename__ = "permissions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    module_code: Mapped[str | None] = mapped_column(
        String(50),
        ForeignKey("modules.code", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    def __repr__(self) -> str:
        return f"<Permission(code={self.code!r}, module={self.module_code})>"


class Role(Base, TimestampMixin):
    """
    Named bundle of permissions assigned to memberships.

    Roles are organization-specific or global (system roles).
    """
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_super_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # null = system-wide role
    organization_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    permissions: Mapped[list["Permission"]] = relationship(
        "Permission",
        secondary=role_permissions,
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r}, super_admin={self.is_super_admin})>"
