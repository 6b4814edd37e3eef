from datetime import datetime, timedelta, timezone

import pytest

from deviceguard.core.config import (
    DatabaseSettings,
    OtpSettings,
    Settings,
    TransferSettings,
)
from deviceguard.core.container import ApplicationContainer
from deviceguard.infrastructure.database import session_scope
from deviceguard.modules.accounts import AccountCreateInput, AccountService
from deviceguard.modules.devices import DeviceRegistry, DeviceType
from deviceguard.modules.otp import DeliveryAck

PASSWORD = "correct-horse"
IMEI = "123456789012345"


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingChannel:
    name = "recording"

    def __init__(self):
        self.sent = []

    async def send(self, destination, code):
        self.sent.append((destination, code))
        return DeliveryAck(message_id=str(len(self.sent)), channel=self.name)

    @property
    def last_code(self):
        return self.sent[-1][1]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        environment="test",
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'deviceguard.db'}"),
        otp=OtpSettings(ttl_seconds=600, max_attempts=5, resend_cooldown_seconds=30),
        transfers=TransferSettings(attempt_ttl_seconds=24 * 3600, sweep_enabled=False),
    )


@pytest.fixture
async def container(settings, channel, clock):
    container = ApplicationContainer.build(settings, channel=channel, clock=clock)
    await container.start(run_sweeper=False)
    yield container
    await container.shutdown()


@pytest.fixture
def make_account(container):
    async def _make(username, *, email=None, phone_number=None, role="user", is_active=True):
        async with session_scope(container.session_factory) as session:
            service = AccountService.with_session(session, container.clock)
            return await service.create_account(
                AccountCreateInput(
                    username=username,
                    password=PASSWORD,
                    role=role,
                    email=email,
                    phone_number=phone_number,
                    is_active=is_active,
                )
            )

    return _make


@pytest.fixture
def make_device(container):
    async def _make(owner_id, *, imei=None, imei2=None, serial_number=None, name="Pixel 8"):
        async with session_scope(container.session_factory) as session:
            registry = DeviceRegistry.with_session(session, container.clock)
            return await registry.register(
                owner_id=owner_id,
                name=name,
                device_type=DeviceType.PHONE,
                imei=imei,
                imei2=imei2,
                serial_number=serial_number,
            )

    return _make


@pytest.fixture
def load_device(container):
    async def _load(device_id):
        async with session_scope(container.session_factory) as session:
            registry = DeviceRegistry.with_session(session, container.clock)
            return await registry.get(device_id), list(await registry.history(device_id))

    return _load


@pytest.fixture
async def alice(make_account):
    return await make_account("alice", email="alice@example.com", phone_number="+2348012345678")


@pytest.fixture
async def bob(make_account):
    return await make_account("bob", email="b@example.com")


@pytest.fixture
async def phone(alice, make_device):
    return await make_device(alice.id, imei=IMEI, serial_number="C02XK1")
