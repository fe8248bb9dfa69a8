"""
Event resource endpoints (equipment, staff, catering, ...).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from eventhub.api.dependencies import ServiceContainer, get_container, get_current_user_id
from eventhub.models.status import ResourceStatus
from eventhub.schemas.resource import (
    ResourceCostSummary,
    ResourceCreate,
    ResourceDates,
    ResourceResponse,
    ResourceStatusChange,
    ResourceUpdate,
    ResponsibleUser,
)

router = APIRouter(tags=["Resources"])


@router.post(
    "/events/{event_id}/resources",
    response_model=ResourceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_resource_endpoint(
    event_id: int,
    spec: ResourceCreate,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return await services.resources.create_resource(event_id, spec, user_id)


@router.get("/events/{event_id}/resources", response_model=list[ResourceResponse])
async def list_resources_endpoint(
    event_id: int,
    resource_status: Optional[ResourceStatus] = Query(None, alias="status"),
    services: ServiceContainer = Depends(get_container),
):
    return await services.resources.list_event_resources(event_id, resource_status)


@router.get("/events/{event_id}/resources/cost", response_model=ResourceCostSummary)
async def resource_cost_endpoint(
    event_id: int,
    services: ServiceContainer = Depends(get_container),
):
    """Total cost of the event's active resources."""
    total, count = await services.resources.total_cost_for_event(event_id)
    return ResourceCostSummary(event_id=event_id, total_cost=total, resource_count=count)


@router.get("/resources/{resource_id}", response_model=ResourceResponse)
async def get_resource_endpoint(
    resource_id: int,
    services: ServiceContainer = Depends(get_container),
):
    return await services.resources.get_resource(resource_id)


@router.patch("/resources/{resource_id}", response_model=ResourceResponse)
async def update_resource_endpoint(
    resource_id: int,
    changes: ResourceUpdate,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return await services.resources.update_resource(resource_id, changes, user_id)


@router.post("/resources/{resource_id}/status", response_model=ResourceResponse)
async def change_resource_status_endpoint(
    resource_id: int,
    body: ResourceStatusChange,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return await services.resources.change_status(resource_id, body.status, user_id, body.note)


@router.put("/resources/{resource_id}/dates", response_model=ResourceResponse)
async def update_resource_dates_endpoint(
    resource_id: int,
    body: ResourceDates,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return await services.resources.update_dates(
        resource_id, body.delivery_date, body.pickup_date, user_id
    )


@router.put("/resources/{resource_id}/responsible", response_model=ResourceResponse)
async def assign_responsible_endpoint(
    resource_id: int,
    body: ResponsibleUser,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return await services.resources.assign_responsible_user(resource_id, body.user_id, user_id)


@router.delete("/resources/{resource_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_resource_endpoint(
    resource_id: int,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    await services.resources.delete_resource(resource_id, user_id)
