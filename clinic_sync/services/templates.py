"""Notification message templates."""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Dict, Mapping, Optional

from clinic_sync.errors import TemplateError

LOGGER = logging.getLogger(__name__)

PLACEHOLDERS = frozenset({"patient", "data", "ora"})
TEMPLATE_TYPES = frozenset({"confirmation", "reminder", "update", "cancel", "custom"})

DEFAULT_TEMPLATES: Dict[str, str] = {
    "confirmation": (
        "Gentile {patient}, confermiamo il suo appuntamento per il {data} alle {ora}. "
        "Risponda 'OK' per confermare."
    ),
    "reminder": (
        "Gentile {patient}, le ricordiamo il suo appuntamento per domani {data} alle {ora}. "
        "A presto!"
    ),
    "update": (
        "Gentile {patient}, il suo appuntamento è stato modificato. "
        "La nuova data è {data} alle {ora}. Risponda 'OK' per confermare."
    ),
    "cancel": (
        "Gentile {patient}, il suo appuntamento del {data} alle {ora} è stato cancellato. "
        "La preghiamo di contattarci per maggiori informazioni."
    ),
}

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


def validate_templates(templates: Mapping[str, str]) -> None:
    """Reject templates with unknown types or placeholders."""

    for template_type, content in templates.items():
        if template_type not in TEMPLATE_TYPES:
            raise TemplateError(f"unknown template type: {template_type!r}")
        unknown = set(_PLACEHOLDER_RE.findall(content)) - PLACEHOLDERS
        if unknown:
            raise TemplateError(
                f"template {template_type!r} uses unknown placeholders: "
                + ", ".join(sorted(unknown))
            )


def format_date(value: date) -> str:
    """Render a date the way the clinic writes it (D/M/YYYY)."""

    return f"{value.day}/{value.month}/{value.year}"


class TemplateResolver:
    """Render notification messages from custom or built-in templates."""

    def __init__(self, templates: Optional[Mapping[str, str]] = None) -> None:
        custom = dict(templates or {})
        validate_templates(custom)
        self._templates = custom

    def template_for(self, template_type: str) -> str:
        content = self._templates.get(template_type)
        if content:
            return content
        return DEFAULT_TEMPLATES.get(template_type, "")

    def render(self, template_type: str, variables: Mapping[str, str]) -> str:
        """Substitute every known variable; unknown placeholders stay intact."""

        message = self.template_for(template_type)
        if not message:
            LOGGER.debug("No template for type=%s", template_type)
        for name, value in variables.items():
            message = message.replace("{" + name + "}", value)
        return message
