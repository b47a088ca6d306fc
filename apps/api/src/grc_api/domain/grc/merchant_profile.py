"""Merchant public-page completeness scoring and slug generation."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence


@dataclass(slots=True)
class SectionCompletion:
    id: str
    label: str
    completed: int
    total: int
    missing_fields: list[str] = field(default_factory=list)

    @property
    def percentage(self) -> int:
        return round(self.completed / self.total * 100) if self.total else 0


@dataclass(slots=True)
class CompletionResult:
    sections: list[SectionCompletion]

    @property
    def completed(self) -> int:
        return sum(section.completed for section in self.sections)

    @property
    def total(self) -> int:
        return sum(section.total for section in self.sections)

    @property
    def percentage(self) -> int:
        return round(self.completed / self.total * 100) if self.total else 0

    @property
    def missing_fields(self) -> list[str]:
        return [label for section in self.sections for label in section.missing_fields]

    @property
    def is_complete(self) -> bool:
        return self.percentage == 100


def has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def _field_section(
    section_id: str,
    label: str,
    fields: Sequence[tuple[str, Any]],
) -> SectionCompletion:
    missing = [name for name, value in fields if not has_value(value)]
    return SectionCompletion(
        id=section_id,
        label=label,
        completed=len(fields) - len(missing),
        total=len(fields),
        missing_fields=missing,
    )


def _flag_section(section_id: str, label: str, present: bool, missing_label: str) -> SectionCompletion:
    return SectionCompletion(
        id=section_id,
        label=label,
        completed=1 if present else 0,
        total=1,
        missing_fields=[] if present else [missing_label],
    )


def calculate_completion(profile: Mapping[str, Any] | Any) -> CompletionResult:
    """Score a merchant profile across business, location, contact, hours, media and services."""

    get: Callable[[str], Any]
    if isinstance(profile, Mapping):
        get = profile.get
    else:
        get = lambda key: getattr(profile, key, None)  # noqa: E731

    hours = get("hours") or {}
    services = get("services") or []
    photos = get("photos") or []

    sections = [
        _field_section(
            "business",
            "Business",
            [
                ("Business Name", get("business_name")),
                ("Category", get("category_id")),
                ("Description", get("description")),
                ("About/Story", get("about_story")),
            ],
        ),
        _field_section(
            "location",
            "Location",
            [
                ("Street Address", get("street_address")),
                ("City", get("city")),
                ("State", get("state")),
                ("ZIP Code", get("zip_code")),
            ],
        ),
        _field_section(
            "contact",
            "Contact",
            [
                ("Phone", get("phone")),
                ("Website", get("website")),
                ("Instagram", get("instagram_url")),
                ("Facebook", get("facebook_url")),
                ("TikTok", get("tiktok_url")),
            ],
        ),
        _flag_section(
            "hours",
            "Hours",
            isinstance(hours, Mapping) and any(has_value(value) for value in hours.values()),
            "Business Hours",
        ),
        _field_section(
            "media",
            "Media",
            [
                ("Logo", get("logo_url")),
                ("Video", get("vimeo_url")),
                ("Photos", photos),
            ],
        ),
        _flag_section(
            "services",
            "Services",
            any(isinstance(item, Mapping) and has_value(item.get("name")) for item in services),
            "Services/Menu Items",
        ),
    ]
    return CompletionResult(sections=sections)


_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def slugify(*parts: str | None) -> str:
    joined = " ".join(part for part in parts if part)
    slug = _SLUG_INVALID.sub("-", joined.lower()).strip("-")
    return slug or "merchant"


_NON_DIGIT = re.compile(r"\D")
_VIMEO_URL = re.compile(r"vimeo\.com/(?:video/)?(\d+)")


def strip_phone_number(value: str | None) -> str:
    """Digits only, capped at ten (US numbers without country code)."""

    return _NON_DIGIT.sub("", value or "")[:10]


def is_valid_vimeo_url(url: str | None) -> bool:
    return bool(url and _VIMEO_URL.search(url))
