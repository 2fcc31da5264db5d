from typing import List, Optional
from sqlalchemy import String, Integer, Float, ForeignKey, Table, Column, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.session import Base

# таблица связей м2м
organization_activity = Table(
    "organization_activity",
    Base.metadata,
    Column("organization_id", Integer, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True),
    Column("activity_id", Integer, ForeignKey("activities.id", ondelete="CASCADE"), primary_key=True),
)

class Building(Base):
    __tablename__ = "buildings"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    # координаты могут быть пустыми, такие здания в гео поиск не попадают
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True, index=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    organizations: Mapped[List["Organization"]] = relationship(back_populates="building")

class Activity(Base):
    __tablename__ = "activities"
    __table_args__ = (
        CheckConstraint("lft < rgt", name="ck_activities_bounds"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey("activities.id", ondelete="CASCADE"), nullable=True)
    # nested set: все потомки лежат внутри [lft, rgt] предка
    lft: Mapped[int] = mapped_column(Integer, index=True)
    rgt: Mapped[int] = mapped_column(Integer, index=True)

    organizations: Mapped[List["Organization"]] = relationship(secondary=organization_activity, back_populates="activities")

class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    building_id: Mapped[int] = mapped_column(ForeignKey("buildings.id"))

    building: Mapped["Building"] = relationship(back_populates="organizations")
    activities: Mapped[List["Activity"]] = relationship(
        secondary=organization_activity, back_populates="organizations", order_by="Activity.lft"
    )
    phones: Mapped[List["OrganizationPhone"]] = relationship(
        back_populates="organization", cascade="all, delete-orphan", order_by="OrganizationPhone.id"
    )

class OrganizationPhone(Base):
    __tablename__ = "organization_phones"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    number: Mapped[str] = mapped_column(String(64))
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"))

    organization: Mapped["Organization"] = relationship(back_populates="phones")
