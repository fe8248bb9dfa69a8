"""
Resource lifecycle: logistics allocated to an event (equipment, staff,
catering, ...).

Every status change is checked against ResourceStatus.transition_to and
written through the resource's version column, so two people moving the same
resource at once cannot both win. total_cost is recomputed whenever
quantity or unit_cost changes.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select

from eventhub.core.clock import as_utc
from eventhub.core.exceptions import ResourceInUseError, ValidationFailedError
from eventhub.core.logging import get_logger
from eventhub.core.metrics import record_transition
from eventhub.core.permissions import require_admin, require_event_manager
from eventhub.db.session import unit_of_work
from eventhub.models.enums import NotificationType
from eventhub.models.resource import EventResource
from eventhub.models.status import ResourceStatus
from eventhub.models.user import User
from eventhub.schemas.resource import ResourceCreate, ResourceUpdate
from eventhub.services.base import DomainService, reject_nulls
from eventhub.services.booking_service import CENTS

logger = get_logger(__name__)

ATTENTION_STATUSES = frozenset({
    ResourceStatus.MAINTENANCE,
    ResourceStatus.OUT_OF_SERVICE,
    ResourceStatus.LOST,
    ResourceStatus.PENDING_INSPECTION,
})

# Coming back from these to AVAILABLE is announced as an update
RECOVERY_STATUSES = frozenset({ResourceStatus.MAINTENANCE, ResourceStatus.OUT_OF_SERVICE})

REQUIRED_FIELDS = frozenset({"name", "type", "quantity", "unit_cost", "is_critical"})


def _validate_dates(delivery: Optional[datetime], pickup: Optional[datetime]) -> None:
    if delivery is not None and pickup is not None and delivery > pickup:
        raise ValidationFailedError("Delivery date must not be after the pickup date")


def _validate(resource: EventResource) -> None:
    if not resource.name or not resource.name.strip():
        raise ValidationFailedError("Resource name is required")
    if resource.type is None:
        raise ValidationFailedError("Resource type is required")
    if resource.quantity is None or resource.quantity <= 0:
        raise ValidationFailedError("Resource quantity must be positive")
    if resource.unit_cost is None or Decimal(resource.unit_cost) < 0:
        raise ValidationFailedError("Resource unit cost cannot be negative")
    _validate_dates(resource.delivery_date, resource.pickup_date)


def _resource_payload(resource: EventResource, event_title: str, **extra) -> dict:
    payload = {
        "event_id": resource.event_id,
        "event_title": event_title,
        "resource_id": resource.id,
        "resource_name": resource.name,
        "status": resource.status.value,
    }
    payload.update(extra)
    return payload


class ResourceService(DomainService):
    async def _resource(self, db, resource_id: int) -> EventResource:
        return await self._get(db, EventResource, resource_id, "Resource")

    async def _managed_resource(self, db, resource_id: int, actor_id: int, action: str):
        actor = await self._actor(db, actor_id)
        resource = await self._resource(db, resource_id)
        event = await self._event(db, resource.event_id)
        require_event_manager(actor, event, action)
        return actor, resource, event

    async def create_resource(self, event_id: int, data: ResourceCreate, actor_id: int) -> EventResource:
        async with unit_of_work(self.session_factory) as db:
            actor = await self._actor(db, actor_id)
            event = await self._event(db, event_id)
            require_event_manager(actor, event, "add resources to this event")
            if data.responsible_user_id is not None:
                await self._get(db, User, data.responsible_user_id, "User")

            resource = EventResource(
                event_id=event.id,
                name=(data.name or "").strip(),
                description=data.description,
                type=data.type,
                quantity=data.quantity,
                unit_cost=Decimal(data.unit_cost).quantize(CENTS),
                status=ResourceStatus.AVAILABLE,
                supplier_name=data.supplier_name,
                supplier_contact=data.supplier_contact,
                delivery_date=as_utc(data.delivery_date) if data.delivery_date else None,
                pickup_date=as_utc(data.pickup_date) if data.pickup_date else None,
                location_notes=data.location_notes,
                special_requirements=data.special_requirements,
                is_critical=data.is_critical,
                responsible_user_id=data.responsible_user_id,
                assigned_by_id=actor.id if data.responsible_user_id is not None else None,
            )
            _validate(resource)
            resource.recalculate_total_cost()
            db.add(resource)
            event_title = event.title

        logger.info(
            "resource_created",
            resource_id=resource.id,
            event_id=event_id,
            type=resource.type.value,
            total_cost=str(resource.total_cost),
        )
        if resource.responsible_user_id is not None:
            await self.notifier.send(
                NotificationType.RESOURCE_ASSIGNMENT,
                resource.responsible_user_id,
                _resource_payload(resource, event_title),
            )
        return resource

    async def update_resource(
        self, resource_id: int, changes: ResourceUpdate, actor_id: int
    ) -> EventResource:
        updates = changes.model_dump(exclude_unset=True)
        reject_nulls(updates, REQUIRED_FIELDS, "Resource")
        async with unit_of_work(self.session_factory) as db:
            _, resource, _ = await self._managed_resource(
                db, resource_id, actor_id, "edit this resource"
            )
            for field, value in updates.items():
                if field == "name":
                    value = value.strip()
                elif field == "unit_cost":
                    value = Decimal(value).quantize(CENTS)
                setattr(resource, field, value)
            _validate(resource)
            resource.recalculate_total_cost()

        logger.info("resource_updated", resource_id=resource_id, fields=sorted(updates))
        return resource

    async def change_status(
        self,
        resource_id: int,
        new_status: ResourceStatus,
        actor_id: int,
        note: Optional[str] = None,
    ) -> EventResource:
        new_status = ResourceStatus(new_status)
        now = self.clock.now()
        async with unit_of_work(self.session_factory) as db:
            actor, resource, event = await self._managed_resource(
                db, resource_id, actor_id, "change the status of this resource"
            )
            if new_status.admin_only:
                require_admin(actor, f"move a resource to {new_status.value}")

            previous = resource.status
            resource.status = previous.transition_to(new_status)
            if new_status is ResourceStatus.SETUP:
                resource.setup_time = now
            elif new_status is ResourceStatus.TEARDOWN:
                resource.breakdown_time = now
            event_title = event.title
            organizer_id = event.organizer_id

        record_transition("resource", new_status.value)
        logger.info(
            "resource_status_changed",
            resource_id=resource_id,
            from_status=previous.value,
            to_status=new_status.value,
            actor_id=actor_id,
        )

        if new_status in ATTENTION_STATUSES:
            await self.notifier.send(
                NotificationType.RESOURCE_ATTENTION,
                resource.responsible_user_id or organizer_id,
                _resource_payload(resource, event_title, note=note),
            )
        elif new_status is ResourceStatus.AVAILABLE and previous in RECOVERY_STATUSES:
            await self.notifier.send(
                NotificationType.RESOURCE_UPDATE,
                resource.responsible_user_id or organizer_id,
                _resource_payload(resource, event_title),
            )
        return resource

    async def update_dates(
        self,
        resource_id: int,
        delivery: Optional[datetime],
        pickup: Optional[datetime],
        actor_id: int,
    ) -> EventResource:
        delivery = as_utc(delivery) if delivery is not None else None
        pickup = as_utc(pickup) if pickup is not None else None
        _validate_dates(delivery, pickup)
        async with unit_of_work(self.session_factory) as db:
            _, resource, _ = await self._managed_resource(
                db, resource_id, actor_id, "reschedule this resource"
            )
            resource.delivery_date = delivery
            resource.pickup_date = pickup

        logger.info("resource_dates_updated", resource_id=resource_id)
        return resource

    async def assign_responsible_user(
        self, resource_id: int, user_id: int, actor_id: int
    ) -> EventResource:
        async with unit_of_work(self.session_factory) as db:
            actor, resource, event = await self._managed_resource(
                db, resource_id, actor_id, "assign this resource"
            )
            assignee = await self._get(db, User, user_id, "User")
            resource.responsible_user_id = assignee.id
            resource.assigned_by_id = actor.id
            event_title = event.title

        logger.info("resource_assigned", resource_id=resource_id, user_id=user_id)
        await self.notifier.send(
            NotificationType.RESOURCE_ASSIGNMENT,
            user_id,
            _resource_payload(resource, event_title),
        )
        return resource

    async def delete_resource(self, resource_id: int, actor_id: int) -> None:
        async with unit_of_work(self.session_factory) as db:
            _, resource, _ = await self._managed_resource(
                db, resource_id, actor_id, "delete this resource"
            )
            if resource.status.is_in_use:
                raise ResourceInUseError(
                    f"Resource {resource_id} is {resource.status.value} and cannot be deleted"
                )
            await db.delete(resource)

        logger.info("resource_deleted", resource_id=resource_id, actor_id=actor_id)

    async def get_resource(self, resource_id: int) -> EventResource:
        async with unit_of_work(self.session_factory) as db:
            return await self._resource(db, resource_id)

    async def list_event_resources(
        self, event_id: int, status: Optional[ResourceStatus] = None
    ) -> list[EventResource]:
        query = select(EventResource).where(EventResource.event_id == event_id)
        if status is not None:
            query = query.where(EventResource.status == status)
        async with unit_of_work(self.session_factory) as db:
            await self._event(db, event_id)
            result = await db.execute(query.order_by(EventResource.id))
            return list(result.scalars().all())

    async def total_cost_for_event(self, event_id: int) -> tuple[Decimal, int]:
        """Sum of total_cost and count over the event's resources that are still active."""
        inactive = [s for s in ResourceStatus if not s.is_active]
        async with unit_of_work(self.session_factory) as db:
            await self._event(db, event_id)
            total, count = (
                await db.execute(
                    select(
                        func.coalesce(func.sum(EventResource.total_cost), 0),
                        func.count(EventResource.id),
                    ).where(
                        EventResource.event_id == event_id,
                        EventResource.status.notin_(inactive),
                    )
                )
            ).one()
        return Decimal(str(total)).quantize(CENTS), int(count)
