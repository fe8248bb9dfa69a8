"""
Logistics resource (equipment, staff, catering, ...) allocated to an event.

`total_cost` is always unit_cost * quantity; the resource service recomputes
it on every mutation of either field.
"""

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)

from eventhub.db.base import Base, TimestampMixin, UTCDateTime
from eventhub.models.enums import ResourceType
from eventhub.models.status import ResourceStatus


class EventResource(Base, TimestampMixin):
    __tablename__ = "event_resources"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(Enum(ResourceType, native_enum=False, length=30), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_cost = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    total_cost = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    status = Column(
        Enum(ResourceStatus, native_enum=False, length=30),
        nullable=False,
        default=ResourceStatus.AVAILABLE,
    )

    supplier_name = Column(String(255), nullable=True)
    supplier_contact = Column(String(255), nullable=True)
    delivery_date = Column(UTCDateTime(), nullable=True)
    pickup_date = Column(UTCDateTime(), nullable=True)
    setup_time = Column(UTCDateTime(), nullable=True)
    breakdown_time = Column(UTCDateTime(), nullable=True)
    location_notes = Column(String(500), nullable=True)
    special_requirements = Column(String(1000), nullable=True)
    is_critical = Column(Boolean, nullable=False, default=False)

    event_id = Column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    responsible_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    assigned_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_resource_quantity_positive"),
        CheckConstraint("unit_cost >= 0", name="check_resource_unit_cost_non_negative"),
    )

    def recalculate_total_cost(self) -> None:
        self.total_cost = Decimal(self.unit_cost or 0) * self.quantity

    def __repr__(self) -> str:
        return f"<EventResource(id={self.id}, name={self.name}, status={self.status})>"
