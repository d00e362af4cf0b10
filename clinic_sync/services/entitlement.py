"""License entitlement resolution."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Optional, Tuple

import anyio
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from clinic_sync import models
from clinic_sync.schemas import Entitlement, License, utcnow
from clinic_sync.services.db import session_scope
from clinic_sync.services.ports import EntitlementSource

LOGGER = logging.getLogger(__name__)

# license type -> (calendar, messaging)
LICENSE_FEATURES: Dict[str, Tuple[bool, bool]] = {
    "basic": (False, False),
    "google": (True, False),
    "whatsapp": (False, True),
    "full": (True, True),
}


class EntitlementGate:
    """Decide which optional integrations the installed license permits."""

    def __init__(self, source: EntitlementSource) -> None:
        self._source = source

    async def resolve(self, now: Optional[datetime] = None) -> Entitlement:
        """Return the entitlement at ``now``. Never raises."""

        now = now or utcnow()
        try:
            license_ = await self._source.current_license()
        except Exception as exc:
            LOGGER.warning("License lookup failed; integrations disabled: %s", exc)
            return Entitlement()

        if license_ is None:
            return Entitlement()

        days_left = (license_.expiry_date - now.date()).days
        if days_left < 0:
            LOGGER.info("License %s expired on %s", license_.license_type, license_.expiry_date)
            return Entitlement(days_until_expiry=0)

        calendar, messaging = LICENSE_FEATURES.get(license_.license_type, (False, False))
        return Entitlement(
            calendar_enabled=calendar,
            messaging_enabled=messaging,
            days_until_expiry=days_left,
        )


class DatabaseEntitlementSource:
    """Read the most recently installed license row."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def current_license(self) -> Optional[License]:
        def _load() -> Optional[License]:
            with session_scope(self._session_factory) as session:
                stmt = (
                    select(models.License)
                    .order_by(models.License.created_at.desc(), models.License.id.desc())
                    .limit(1)
                )
                row = session.scalars(stmt).first()
                return License.model_validate(row) if row is not None else None

        return await anyio.to_thread.run_sync(_load, abandon_on_cancel=True)
