"""Tests for the portable column types."""

import uuid

import pytest
from sqlalchemy import select

from complianceos.db.compat import normalize_string_list
from complianceos.db.models import Vendor


@pytest.mark.parametrize(
    "raw,expected",
    [
        (None, []),
        ([], []),
        ([" PII ", "Billing", "PII", "", "  "], ["PII", "Billing"]),
        (("b", "a", "b"), ["b", "a"]),
    ],
)
def test_normalize_string_list(raw, expected):
    assert normalize_string_list(raw) == expected


@pytest.mark.asyncio
async def test_string_list_round_trip(db, workspace):
    vendor = Vendor(id=uuid.uuid4(), client_id=workspace.id, name="Segment", data_categories=["Events", " Events", "PII"])
    db.add(vendor)
    await db.flush()
    db.expire_all()

    stored = (await db.execute(select(Vendor).where(Vendor.id == vendor.id))).scalar_one()
    assert stored.data_categories == ["Events", "PII"]
    assert isinstance(stored.id, uuid.UUID)
