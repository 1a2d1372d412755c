"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from helpers import FakeCommerceClient
from shopassist.chat.message_model import Address
from shopassist.session.events import EventBus


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def fake_client() -> FakeCommerceClient:
    return FakeCommerceClient()


@pytest.fixture
def home_address() -> Address:
    return Address(id="a1", label="Home", is_default=True, city="Pune", state="MH")
