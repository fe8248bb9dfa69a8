"""
Pydantic schemas for event resource requests and responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from eventhub.models.enums import ResourceType
from eventhub.models.status import ResourceStatus


class ResourceCreate(BaseModel):
    name: str = Field(..., max_length=255)
    description: Optional[str] = None
    type: Optional[ResourceType] = None
    quantity: int = 1
    unit_cost: Decimal = Decimal("0.00")
    supplier_name: Optional[str] = Field(None, max_length=255)
    supplier_contact: Optional[str] = Field(None, max_length=255)
    delivery_date: Optional[datetime] = None
    pickup_date: Optional[datetime] = None
    location_notes: Optional[str] = Field(None, max_length=500)
    special_requirements: Optional[str] = Field(None, max_length=1000)
    is_critical: bool = False
    responsible_user_id: Optional[int] = None


class ResourceUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    type: Optional[ResourceType] = None
    quantity: Optional[int] = None
    unit_cost: Optional[Decimal] = None
    supplier_name: Optional[str] = Field(None, max_length=255)
    supplier_contact: Optional[str] = Field(None, max_length=255)
    location_notes: Optional[str] = Field(None, max_length=500)
    special_requirements: Optional[str] = Field(None, max_length=1000)
    is_critical: Optional[bool] = None


class ResourceStatusChange(BaseModel):
    status: ResourceStatus
    note: Optional[str] = Field(None, max_length=500)


class ResourceDates(BaseModel):
    delivery_date: Optional[datetime] = None
    pickup_date: Optional[datetime] = None


class ResponsibleUser(BaseModel):
    user_id: int


class ResourceResponse(BaseModel):
    id: int
    event_id: int
    name: str
    description: Optional[str]
    type: ResourceType
    quantity: int
    unit_cost: Decimal
    total_cost: Decimal
    status: ResourceStatus
    supplier_name: Optional[str]
    supplier_contact: Optional[str]
    delivery_date: Optional[datetime]
    pickup_date: Optional[datetime]
    setup_time: Optional[datetime]
    breakdown_time: Optional[datetime]
    location_notes: Optional[str]
    special_requirements: Optional[str]
    is_critical: bool
    responsible_user_id: Optional[int]
    assigned_by_id: Optional[int]

    model_config = {"from_attributes": True}


class ResourceCostSummary(BaseModel):
    event_id: int
    total_cost: Decimal
    resource_count: int
