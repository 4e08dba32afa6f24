"""
Core asset models: Assets and the lookup tables an import resolves against.

Lookup ownership:
  - categories and asset types are shared across companies (unique by name)
  - departments and tags are company-scoped (unique per company + name)
  - locations are company-scoped and hierarchical; imports only ever
    resolve them, never create them
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assethub.core.database import Base


asset_tag_links = Table(
    "asset_tag_links",
    Base.metadata,
    Column("asset_id", Integer, ForeignKey("assets.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("asset_tags.id", ondelete="CASCADE"), primary_key=True),
)


class Location(Base):
    """
    A place assets live in: building, floor, room, ...

    The full path is the chain of ancestor names joined with ' → ',
    e.g. 'HQ → Floor 2 → Server Room'.
    """

    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    parent_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("locations.id", ondelete="SET NULL"),
        nullable=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    __table_args__ = (
        Index("idx_locations_company", "company_id"),
        Index("idx_locations_company_name", "company_id", "name"),
    )

    def __repr__(self) -> str:
        return f"<Location {self.name}>"


class AssetCategory(Base):
    __tablename__ = "asset_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<AssetCategory {self.name}>"


class AssetType(Base):
    __tablename__ = "asset_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<AssetType {self.name}>"


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_by: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="uq_departments_company_name"),
    )

    def __repr__(self) -> str:
        return f"<Department {self.name}>"


class AssetTag(Base):
    __tablename__ = "asset_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="uq_asset_tags_company_name"),
    )

    def __repr__(self) -> str:
        return f"<AssetTag {self.name}>"


class Asset(Base):
    """
    A tracked physical asset.

    ``asset_id`` is the human-facing identifier (e.g. ASSET-7-X3K9QZ) and is
    unique within a company. Serial numbers are unique within a company
    when present.
    """

    __tablename__ = "assets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asset_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Company-scoped public identifier.",
    )
    company_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("asset_categories.id", ondelete="SET NULL"),
        nullable=True,
    )
    type: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Asset type label (name of an asset_types row).",
    )
    serial_number: Mapped[str | None] = mapped_column(String(255), nullable=True)
    model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    manufacturer: Mapped[str | None] = mapped_column(String(255), nullable=True)
    purchase_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    purchase_price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    location_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("locations.id", ondelete="SET NULL"),
        nullable=True,
    )
    department_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
    )
    user_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="The operator who created (imported) this asset.",
    )
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="active",
        comment="active, inactive, archived.",
    )
    warranty: Mapped[str | None] = mapped_column(String(255), nullable=True)
    health_score: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(255), nullable=True)
    supplier: Mapped[str | None] = mapped_column(String(255), nullable=True)
    depreciation: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Depreciation method.",
    )
    label_path: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
        comment="Storage path of the generated asset label.",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    tags: Mapped[list["AssetTag"]] = relationship(
        "AssetTag",
        secondary=asset_tag_links,
        lazy="selectin",
        viewonly=True,
    )

    __table_args__ = (
        UniqueConstraint("company_id", "asset_id", name="uq_assets_company_asset_id"),
        UniqueConstraint("company_id", "serial_number", name="uq_assets_company_serial"),
        Index("idx_assets_company", "company_id"),
    )

    def __repr__(self) -> str:
        return f"<Asset {self.asset_id}>"
