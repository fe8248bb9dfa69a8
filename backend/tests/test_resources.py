"""
Tests for the resource lifecycle engine.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from eventhub.core.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ResourceInUseError,
    ValidationFailedError,
)
from eventhub.models.enums import NotificationType, ResourceType
from eventhub.models.resource import EventResource
from eventhub.models.status import ResourceStatus
from eventhub.schemas.resource import ResourceCreate, ResourceUpdate


def projector(**overrides) -> ResourceCreate:
    values = dict(
        name="Projector",
        type=ResourceType.AUDIO_VISUAL,
        quantity=2,
        unit_cost=Decimal("150.00"),
    )
    values.update(overrides)
    return ResourceCreate(**values)


@pytest.mark.asyncio
async def test_create_resource_computes_total(services, test_event, organizer):
    resource = await services.resources.create_resource(test_event.id, projector(), organizer.id)

    assert resource.status is ResourceStatus.AVAILABLE
    assert resource.total_cost == Decimal("300.00")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"name": "   "},
        {"type": None},
        {"quantity": 0},
        {"unit_cost": Decimal("-1.00")},
    ],
)
async def test_create_resource_validation(services, test_event, organizer, overrides):
    with pytest.raises(ValidationFailedError):
        await services.resources.create_resource(test_event.id, projector(**overrides), organizer.id)


@pytest.mark.asyncio
async def test_create_resource_rejects_inverted_dates(services, test_event, organizer, clock):
    delivery = clock.now() + timedelta(days=3)
    with pytest.raises(ValidationFailedError):
        await services.resources.create_resource(
            test_event.id,
            projector(delivery_date=delivery, pickup_date=delivery - timedelta(hours=1)),
            organizer.id,
        )


@pytest.mark.asyncio
async def test_only_organizer_adds_resources(services, test_event, customer):
    with pytest.raises(ForbiddenError):
        await services.resources.create_resource(test_event.id, projector(), customer.id)


@pytest.mark.asyncio
async def test_update_recomputes_total(services, test_event, organizer):
    resource = await services.resources.create_resource(test_event.id, projector(), organizer.id)

    updated = await services.resources.update_resource(
        resource.id, ResourceUpdate(quantity=5), organizer.id
    )
    assert updated.total_cost == Decimal("750.00")

    with pytest.raises(ValidationFailedError):
        await services.resources.update_resource(resource.id, ResourceUpdate(quantity=0), organizer.id)


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["name", "type", "quantity", "unit_cost", "is_critical"])
async def test_update_rejects_null_for_required_fields(services, test_event, organizer, reload, field):
    resource = await services.resources.create_resource(test_event.id, projector(), organizer.id)

    with pytest.raises(ValidationFailedError):
        await services.resources.update_resource(
            resource.id, ResourceUpdate(**{field: None}), organizer.id
        )

    stored = await reload(EventResource, resource.id)
    assert stored.is_critical is False
    assert stored.total_cost == Decimal("300.00")


@pytest.mark.asyncio
async def test_available_cannot_jump_to_in_use(services, test_event, organizer, reload):
    resource = await services.resources.create_resource(test_event.id, projector(), organizer.id)

    with pytest.raises(InvalidTransitionError):
        await services.resources.change_status(resource.id, ResourceStatus.IN_USE, organizer.id)

    assert (await reload(EventResource, resource.id)).status is ResourceStatus.AVAILABLE


@pytest.mark.asyncio
async def test_setup_and_teardown_are_stamped(services, test_event, organizer, clock):
    resource = await services.resources.create_resource(test_event.id, projector(), organizer.id)

    await services.resources.change_status(resource.id, ResourceStatus.RESERVED, organizer.id)
    setup = await services.resources.change_status(resource.id, ResourceStatus.SETUP, organizer.id)
    assert setup.setup_time == clock.now()

    clock.advance(hours=6)
    await services.resources.change_status(resource.id, ResourceStatus.IN_USE, organizer.id)
    teardown = await services.resources.change_status(resource.id, ResourceStatus.TEARDOWN, organizer.id)
    assert teardown.breakdown_time == clock.now()


@pytest.mark.asyncio
async def test_admin_only_targets(services, test_event, organizer, admin):
    resource = await services.resources.create_resource(test_event.id, projector(), organizer.id)

    with pytest.raises(ForbiddenError):
        await services.resources.change_status(resource.id, ResourceStatus.OUT_OF_SERVICE, organizer.id)

    moved = await services.resources.change_status(resource.id, ResourceStatus.OUT_OF_SERVICE, admin.id)
    assert moved.status is ResourceStatus.OUT_OF_SERVICE


@pytest.mark.asyncio
async def test_attention_goes_to_responsible_user(
    services, test_event, organizer, staff, queued
):
    resource = await services.resources.create_resource(
        test_event.id, projector(responsible_user_id=staff.id), organizer.id
    )
    messages = await queued()
    assert [(m.kind, m.recipient_id) for m in messages] == [
        (NotificationType.RESOURCE_ASSIGNMENT, staff.id)
    ]

    await services.resources.change_status(
        resource.id, ResourceStatus.MAINTENANCE, organizer.id, note="Lamp broken"
    )
    await services.resources.change_status(resource.id, ResourceStatus.AVAILABLE, organizer.id)

    messages = await queued()
    assert [(m.kind, m.recipient_id) for m in messages] == [
        (NotificationType.RESOURCE_ATTENTION, staff.id),
        (NotificationType.RESOURCE_UPDATE, staff.id),
    ]
    assert messages[0].payload["note"] == "Lamp broken"


@pytest.mark.asyncio
async def test_attention_falls_back_to_organizer(services, test_event, organizer, queued):
    resource = await services.resources.create_resource(test_event.id, projector(), organizer.id)

    await services.resources.change_status(resource.id, ResourceStatus.MAINTENANCE, organizer.id)

    messages = await queued()
    assert [(m.kind, m.recipient_id) for m in messages] == [
        (NotificationType.RESOURCE_ATTENTION, organizer.id)
    ]


@pytest.mark.asyncio
async def test_update_dates(services, test_event, organizer, clock):
    resource = await services.resources.create_resource(test_event.id, projector(), organizer.id)
    delivery = clock.now() + timedelta(days=1)

    with pytest.raises(ValidationFailedError):
        await services.resources.update_dates(
            resource.id, delivery, delivery - timedelta(minutes=1), organizer.id
        )

    updated = await services.resources.update_dates(
        resource.id, delivery, delivery + timedelta(days=2), organizer.id
    )
    assert updated.delivery_date == delivery

    only_pickup = await services.resources.update_dates(
        resource.id, None, delivery, organizer.id
    )
    assert only_pickup.delivery_date is None


@pytest.mark.asyncio
async def test_assign_responsible_user(services, test_event, organizer, staff, queued):
    resource = await services.resources.create_resource(test_event.id, projector(), organizer.id)

    with pytest.raises(NotFoundError):
        await services.resources.assign_responsible_user(resource.id, 9999, organizer.id)

    assigned = await services.resources.assign_responsible_user(resource.id, staff.id, organizer.id)
    assert assigned.responsible_user_id == staff.id
    assert assigned.assigned_by_id == organizer.id
    assert [m.kind for m in await queued()] == [NotificationType.RESOURCE_ASSIGNMENT]


@pytest.mark.asyncio
async def test_delete_resource_in_use_fails(services, test_event, organizer):
    resource = await services.resources.create_resource(test_event.id, projector(), organizer.id)
    await services.resources.change_status(resource.id, ResourceStatus.RESERVED, organizer.id)

    with pytest.raises(ResourceInUseError):
        await services.resources.delete_resource(resource.id, organizer.id)

    await services.resources.change_status(resource.id, ResourceStatus.AVAILABLE, organizer.id)
    await services.resources.delete_resource(resource.id, organizer.id)
    with pytest.raises(NotFoundError):
        await services.resources.get_resource(resource.id)


@pytest.mark.asyncio
async def test_total_cost_skips_inactive_resources(services, test_event, organizer, admin):
    await services.resources.create_resource(test_event.id, projector(), organizer.id)
    retired = await services.resources.create_resource(
        test_event.id, projector(name="Old speaker", unit_cost=Decimal("40.00"), quantity=1), organizer.id
    )
    await services.resources.change_status(retired.id, ResourceStatus.OUT_OF_SERVICE, admin.id)

    total, count = await services.resources.total_cost_for_event(test_event.id)
    assert total == Decimal("300.00")
    assert count == 1
    assert len(await services.resources.list_event_resources(test_event.id)) == 2
