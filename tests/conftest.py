import asyncio
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

from ticket_queue.core.config import Settings, get_settings
from ticket_queue.services.notifications import (
    MockNotificationService,
    NotificationChannels,
    RecipientStore,
    build_channels,
    get_notification_service,
    get_recipient_store,
)
from ticket_queue.services.notifications.base import NotificationEvent, NotificationResult
from ticket_queue.services.notifications.channels import BaseChannelAdapter
from ticket_queue.services.queue import build_queue_service, get_queue_service

PARIS = ZoneInfo("Europe/Paris")


class MutableClock:
    """Stands in for datetime.now in the business timezone."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class RecordingChannel(BaseChannelAdapter):
    """Channel adapter that records events and answers as configured."""

    def __init__(self, name: str, succeed: bool = True, delay: float = 0.0, exc: Optional[Exception] = None):
        super().__init__()
        self._name = name
        self.succeed = succeed
        self.delay = delay
        self.exc = exc
        self.events: list[NotificationEvent] = []

    @property
    def name(self) -> str:
        return self._name

    async def send(self, event: NotificationEvent) -> NotificationResult:
        self.events.append(event)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return NotificationResult(
            success=self.succeed,
            message_id=f"{self._name}-{len(self.events)}" if self.succeed else None,
            error_message=None if self.succeed else f"{self._name} down",
            provider="test",
        )


class EmailDownTransport(MockNotificationService):
    """Mock transport whose email provider always fails."""

    async def send_email(self, to_email, subject, body_html, body_text=None) -> NotificationResult:
        return NotificationResult(success=False, error_message="SendGrid unavailable", provider="mock")


@pytest.fixture
def clock():
    return MutableClock(datetime(2024, 3, 10, 9, 0, tzinfo=PARIS))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        data_directory=str(tmp_path / "data"),
        business_timezone="Europe/Paris",
        queue_lock_timeout=5.0,
        notification_timeout_seconds=2.0,
        channel_max_attempts=1,
        channel_retry_delay_seconds=0.0,
        mock_notification_failure_rate=0.0,
        establishment_emails="kitchen@snack.test",
        admin_whatsapp_numbers="+15550001111",
    )


@pytest.fixture
def channels():
    return NotificationChannels(
        email=RecordingChannel("email"),
        whatsapp_admin=RecordingChannel("whatsapp_admin"),
        whatsapp_customer=RecordingChannel("whatsapp_customer"),
    )


@pytest.fixture
def queue_service(settings, channels, clock):
    return build_queue_service(settings, channels, clock=clock)


@pytest.fixture
def recipient_store(settings):
    return RecipientStore(
        settings.recipients_path,
        seed_emails=settings.establishment_emails_list,
        seed_whatsapp=settings.admin_whatsapp_numbers_list,
        lock_timeout=settings.queue_lock_timeout,
    )


@pytest.fixture
def transport():
    return MockNotificationService(failure_rate=0.0, max_latency=0.0)


@pytest.fixture
def make_client(settings, recipient_store, clock):
    """Build a TestClient over isolated services with the given transport."""
    from ticket_queue.main import app

    def factory(transport: MockNotificationService, app_settings: Settings = settings):
        channels = build_channels(transport, recipient_store, app_settings)
        service = build_queue_service(app_settings, channels, clock=clock)
        app.dependency_overrides[get_queue_service] = lambda: service
        app.dependency_overrides[get_recipient_store] = lambda: recipient_store
        app.dependency_overrides[get_notification_service] = lambda: transport
        app.dependency_overrides[get_settings] = lambda: app_settings
        return TestClient(app)

    yield factory
    app.dependency_overrides.clear()


@pytest.fixture
def client(make_client, transport):
    return make_client(transport)
