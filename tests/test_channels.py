"""
Tests for the channel senders.

Every sender returns a bool and never raises; HTTP senders are exercised
against httpx.MockTransport.
"""

import json
from uuid import uuid4

import httpx
from sqlalchemy import select

from studio_notifications.models import Notification, NotificationType
from studio_notifications.services.channels import (
    InAppChannel,
    MessagingChannel,
    MessagingConfig,
    PushChannel,
    PushConfig,
    normalize_phone,
)
from studio_notifications.services.stakeholders import Recipient
from studio_notifications.services.templates import RenderedNotification


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


PUSH_CONFIG = PushConfig(app_id="app-123", rest_api_key="rest-key", api_url="https://push.test/notifications")
MESSAGING_CONFIG = MessagingConfig(
    api_key="wa-key",
    api_url="https://wa.test/send-message",
    app_url="https://studio.test",
)


class TestInAppChannel:
    """The in-app sender writes exactly one inbox record."""

    async def test_creates_record(self, session_factory, studio):
        channel = InAppChannel(session_factory)
        rendered = RenderedNotification(
            title="Design Approved",
            message='Your design "living-room-v2.pdf" has been approved',
            type=NotificationType.DESIGN_APPROVED,
            related_id=studio.project.id,
            related_type="project",
        )

        ok = await channel.send(
            Recipient.from_user(studio.designer), rendered.title, rendered.message, rendered.metadata,
        )

        assert ok is True
        async with session_factory() as session:
            records = (await session.execute(select(Notification))).scalars().all()
        assert len(records) == 1
        assert records[0].user_id == studio.designer.id
        assert records[0].type == NotificationType.DESIGN_APPROVED
        assert records[0].related_id == studio.project.id
        assert records[0].is_read is False

    async def test_database_error_returns_false(self):
        def broken_factory():
            raise RuntimeError("database unavailable")

        channel = InAppChannel(broken_factory)
        ok = await channel.send(Recipient(id=uuid4(), full_name="Ghost"), "t", "m")

        assert ok is False


class TestPushChannel:
    """OneSignal push delivery."""

    async def test_sends_payload_by_external_user_id(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "notif-1", "recipients": 1})

        recipient = Recipient(id=uuid4(), full_name="Jane Doe")
        project_id = uuid4()
        rendered = RenderedNotification(
            title="New Comment on Your Design",
            message="Sam commented",
            type=NotificationType.COMMENT_ADDED,
            related_id=project_id,
            related_type="project",
        )

        async with mock_client(handler) as client:
            ok = await PushChannel(PUSH_CONFIG, client).send(
                recipient, rendered.title, rendered.message, rendered.metadata,
            )

        assert ok is True
        assert seen["auth"] == "Basic rest-key"
        assert seen["body"]["include_external_user_ids"] == [str(recipient.id)]
        assert seen["body"]["headings"] == {"en": "New Comment on Your Design"}
        assert seen["body"]["data"]["type"] == "comment_added"
        assert seen["body"]["url"] == f"/dashboard/projects/{project_id}?stage=design"

    async def test_unregistered_recipient_returns_false(self):
        def handler(request):
            return httpx.Response(200, json={"id": "", "errors": ["All included players are not subscribed"]})

        async with mock_client(handler) as client:
            ok = await PushChannel(PUSH_CONFIG, client).send(Recipient(id=uuid4(), full_name="X"), "t", "m")

        assert ok is False

    async def test_server_error_returns_false(self):
        async with mock_client(lambda r: httpx.Response(500, text="boom")) as client:
            ok = await PushChannel(PUSH_CONFIG, client).send(Recipient(id=uuid4(), full_name="X"), "t", "m")

        assert ok is False

    async def test_transport_error_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("unreachable")

        async with mock_client(handler) as client:
            ok = await PushChannel(PUSH_CONFIG, client).send(Recipient(id=uuid4(), full_name="X"), "t", "m")

        assert ok is False

    async def test_unconfigured_is_skipped(self):
        channel = PushChannel(PushConfig())
        recipient = Recipient(id=uuid4(), full_name="X")

        assert channel.accepts(recipient) is False
        assert await channel.send(recipient, "t", "m") is False


class TestMessagingChannel:
    """WhatsApp delivery through Wasender."""

    async def test_sends_text_with_deep_link(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True})

        recipient = Recipient(id=uuid4(), full_name="Priya", phone_number="+91 98765-43210")
        task_id = uuid4()
        rendered = RenderedNotification(
            title="New Task Assigned",
            message='You have been assigned to "Measure kitchen"',
            type=NotificationType.TASK_ASSIGNED,
            related_id=task_id,
            related_type="task",
        )

        async with mock_client(handler) as client:
            ok = await MessagingChannel(MESSAGING_CONFIG, client).send(
                recipient, rendered.title, rendered.message, rendered.metadata,
            )

        assert ok is True
        assert seen["auth"] == "Bearer wa-key"
        assert seen["body"]["to"] == "919876543210"
        assert seen["body"]["text"].startswith("🔔 *New Task Assigned*\n\n")
        assert seen["body"]["text"].endswith(
            f"Open: https://studio.test/dashboard/tasks?taskId={task_id}"
        )

    async def test_recipient_without_phone_is_not_accepted(self):
        channel = MessagingChannel(MESSAGING_CONFIG)

        assert channel.accepts(Recipient(id=uuid4(), full_name="X")) is False
        assert channel.accepts(Recipient(id=uuid4(), full_name="X", phone_number="  ")) is False

    async def test_rejected_request_returns_false(self):
        async with mock_client(lambda r: httpx.Response(422, json={"message": "invalid"})) as client:
            ok = await MessagingChannel(MESSAGING_CONFIG, client).send(
                Recipient(id=uuid4(), full_name="X", phone_number="98765"), "t", "m",
            )

        assert ok is False

    def test_normalize_phone(self):
        assert normalize_phone("+91 (987) 650-0000") == "919876500000"
        assert normalize_phone(None) == ""
