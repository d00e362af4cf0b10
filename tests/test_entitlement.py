"""License entitlement resolution."""

from datetime import date, datetime, timezone

import pytest

from conftest import StaticEntitlementSource

from clinic_sync.schemas import License
from clinic_sync.services.entitlement import EntitlementGate

pytestmark = pytest.mark.anyio

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def gate_for(license_type, expiry=date(2025, 12, 31)) -> EntitlementGate:
    return EntitlementGate(StaticEntitlementSource(License(license_type=license_type, expiry_date=expiry)))


@pytest.mark.parametrize(
    "license_type, calendar, messaging",
    [
        ("basic", False, False),
        ("google", True, False),
        ("whatsapp", False, True),
        ("full", True, True),
    ],
)
async def test_license_type_unlocks_features(license_type, calendar, messaging):
    entitlement = await gate_for(license_type).resolve(NOW)

    assert entitlement.calendar_enabled is calendar
    assert entitlement.messaging_enabled is messaging


async def test_expired_full_license_unlocks_nothing():
    entitlement = await gate_for("full", expiry=date(2025, 3, 9)).resolve(NOW)

    assert entitlement.calendar_enabled is False
    assert entitlement.messaging_enabled is False


async def test_license_valid_through_expiry_day():
    entitlement = await gate_for("full", expiry=date(2025, 3, 10)).resolve(NOW)

    assert entitlement.calendar_enabled is True
    assert entitlement.days_until_expiry == 0


async def test_days_until_expiry():
    entitlement = await gate_for("google", expiry=date(2025, 3, 20)).resolve(NOW)

    assert entitlement.days_until_expiry == 10


async def test_missing_license_is_most_restrictive():
    entitlement = await EntitlementGate(StaticEntitlementSource(None)).resolve(NOW)

    assert entitlement.calendar_enabled is False
    assert entitlement.messaging_enabled is False


async def test_source_errors_never_escape():
    class BrokenSource:
        async def current_license(self):
            raise RuntimeError("license table missing")

    entitlement = await EntitlementGate(BrokenSource()).resolve(NOW)

    assert entitlement.calendar_enabled is False
    assert entitlement.messaging_enabled is False
