"""
Ready-made subscriptions for common application feeds.

Each helper builds the key and callback set and registers them on the
given registry, returning the handle to unsubscribe with.
"""

from typing import Optional

from .models import ChannelHandle, RealtimeCallbacks, RecordCallback, SubscriptionKey
from .registry import ChannelRegistry


def subscribe_to_project_tasks(
    registry: ChannelRegistry,
    project_id: int,
    on_task_added: Optional[RecordCallback] = None,
    on_task_updated: Optional[RecordCallback] = None,
    on_task_deleted: Optional[RecordCallback] = None,
) -> ChannelHandle:
    """Task inserts, updates and deletes for one project."""
    return registry.subscribe(
        SubscriptionKey(table="tasks", filter_column="project_id", filter_value=project_id),
        RealtimeCallbacks(
            on_insert=on_task_added,
            on_update=on_task_updated,
            on_delete=on_task_deleted,
        ),
    )


def subscribe_to_organization_activity(
    registry: ChannelRegistry,
    organization_id: int,
    callback: RecordCallback,
) -> ChannelHandle:
    """New activity log entries for an organization."""
    return registry.subscribe(
        SubscriptionKey.for_organization("activity_logs", organization_id),
        RealtimeCallbacks(on_insert=callback),
    )


def subscribe_to_automation_status(
    registry: ChannelRegistry,
    automation_id: str,
    on_status_change: RecordCallback,
) -> ChannelHandle:
    """Status changes of a single automation."""
    return registry.subscribe(
        SubscriptionKey(
            table="automations",
            filter_column="automation_id",
            filter_value=automation_id,
        ),
        RealtimeCallbacks(on_update=on_status_change),
    )


def subscribe_to_new_organization_members(
    registry: ChannelRegistry,
    organization_id: int,
    on_new_member: RecordCallback,
) -> ChannelHandle:
    """Users joining an organization, by creation or by moving into it."""
    return registry.subscribe(
        SubscriptionKey.for_organization("users", organization_id),
        RealtimeCallbacks(on_insert=on_new_member, on_update=on_new_member),
    )
