"""Tests for the shared model base."""

import pytest

from entitlements.core.database.base import generate_ulid
from entitlements.features.organizations.models import Organization


def test_generate_ulid():
    first, second = generate_ulid(), generate_ulid()

    assert isinstance(first, str)
    assert len(first) == 26
    assert first != second


@pytest.mark.asyncio
async def test_insert_assigns_ulid(db):
    org = Organization(name="Acme")
    db.add(org)
    await db.commit()

    assert len(org.id) == 26
