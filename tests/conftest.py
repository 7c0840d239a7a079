"""Pytest configuration and shared fixtures."""

import pytest

from challans.config import ChallanConfig
from challans.domain import Role, User
from challans.notifications import NotificationBus
from challans.services import ChallanService
from tests.fakes import FIXED_NOW, InMemoryChallanStore, RecordingChannel, make_user, speeding_attrs


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def config() -> ChallanConfig:
    return ChallanConfig()


@pytest.fixture
def store() -> InMemoryChallanStore:
    return InMemoryChallanStore()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def bus(channel) -> NotificationBus:
    return NotificationBus([channel])


@pytest.fixture
def service(store, config, bus, clock) -> ChallanService:
    return ChallanService(store=store, config=config, bus=bus, clock=clock)


@pytest.fixture
def citizen(store) -> User:
    return store.add_user(
        make_user(Role.CITIZEN, name="Asha Rao", email="citizen@example.com", phone="+919800000000")
    )


@pytest.fixture
def officer(store) -> User:
    return store.add_user(make_user(Role.OFFICER, name="Officer Singh", email="officer@example.com"))


@pytest.fixture
def admin(store) -> User:
    return store.add_user(make_user(Role.ADMIN, name="Admin", email="admin@example.com"))


@pytest.fixture
def issued_challan(service, officer, citizen, channel) -> dict:
    """A pending speeding challan (fine 1000.00). Clears the channel afterwards."""
    result = service.issue_challan(str(officer.id), speeding_attrs())
    assert result.success, result.error
    channel.events.clear()
    return result.data["challan"]
