"""
Unit tests for the notification inbox and the background sink.
"""

import pytest

from opsdesk.database.exceptions import NotFoundError
from opsdesk.services.notifications import NotificationSink, PendingNotification
from opsdesk.utils.background_tasks import drain_background_tasks


@pytest.fixture
def sink(db):
    return NotificationSink(db)


@pytest.mark.asyncio
async def test_deliver_and_list(sink, notification_repo, org):
    await sink.deliver(org.ids.alice, "task_assigned", "Task assigned", "First")
    await sink.deliver(org.ids.alice, "task_assigned", "Task assigned", "Second")
    await sink.deliver(org.ids.bob, "task_assigned", "Task assigned", "Not yours")

    inbox = await notification_repo.list_for_user(org.alice)

    assert [n.message for n in inbox] == ["Second", "First"]
    assert await notification_repo.unread_count(org.alice) == 2


@pytest.mark.asyncio
async def test_notify_without_recipient(sink):
    assert sink.notify(None, "task_assigned", "Task assigned", "Nobody") is None


@pytest.mark.asyncio
async def test_dispatch_runs_in_background(sink, notification_repo, org):
    tasks = sink.dispatch([
        PendingNotification(org.ids.alice, "leave_request_approved", "Approved", "Enjoy", {"leave_request_id": 1}),
        PendingNotification(org.ids.bob, "leave_request_rejected", "Rejected", "Sorry"),
    ])
    await drain_background_tasks()

    assert len(tasks) == 2
    inbox = await notification_repo.list_for_user(org.alice)
    assert inbox[0].data == {"leave_request_id": 1}


@pytest.mark.asyncio
async def test_delivery_failure_is_contained(sink, notification_repo, org):
    # Unknown user violates the foreign key; the failure is only logged
    task = sink.notify(987654, "task_assigned", "Task assigned", "Ghost")
    await drain_background_tasks()

    assert task.result() is None
    assert task.exception() is None


@pytest.mark.asyncio
async def test_mark_read(sink, notification_repo, org):
    notification_id = await sink.deliver(org.ids.alice, "task_assigned", "Task assigned", "Hello")

    marked = await notification_repo.mark_read(org.alice, notification_id)

    assert marked.read is True
    assert marked.read_at is not None
    assert await notification_repo.unread_count(org.alice) == 0
    assert await notification_repo.list_for_user(org.alice, unread_only=True) == []


@pytest.mark.asyncio
async def test_mark_read_other_users_notification(sink, notification_repo, org):
    notification_id = await sink.deliver(org.ids.bob, "task_assigned", "Task assigned", "Bob's")

    with pytest.raises(NotFoundError):
        await notification_repo.mark_read(org.alice, notification_id)


@pytest.mark.asyncio
async def test_mark_all_read(sink, notification_repo, org):
    for message in ("One", "Two", "Three"):
        await sink.deliver(org.ids.alice, "task_assigned", "Task assigned", message)
    await sink.deliver(org.ids.bob, "task_assigned", "Task assigned", "Bob's")

    assert await notification_repo.mark_all_read(org.alice) == 3
    assert await notification_repo.unread_count(org.alice) == 0
    assert await notification_repo.unread_count(org.bob) == 1
