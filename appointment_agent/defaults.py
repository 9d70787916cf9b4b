"""Starter service catalogs offered to a new business, keyed by profession."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DefaultService:
    name: str
    description: str
    price: float
    duration_minutes: int


DENTIST_SERVICES: tuple[DefaultService, ...] = (
    DefaultService("Routine Cleaning", "Professional teeth cleaning and polishing", 120, 45),
    DefaultService("Dental Exam", "Comprehensive oral examination", 80, 30),
    DefaultService("Teeth Whitening", "Professional teeth whitening treatment", 350, 60),
    DefaultService("Filling", "Tooth filling for cavities", 200, 45),
    DefaultService("Root Canal", "Root canal treatment", 900, 90),
    DefaultService("Crown", "Dental crown placement", 1200, 60),
)

MECHANIC_SERVICES: tuple[DefaultService, ...] = (
    DefaultService("Oil Change", "Standard oil and filter change", 45, 30),
    DefaultService("Brake Inspection", "Complete brake system inspection", 50, 30),
    DefaultService("Brake Pad Replacement", "Front or rear brake pad replacement", 250, 60),
    DefaultService("Tire Rotation", "Rotate and balance all four tires", 40, 30),
    DefaultService("Engine Diagnostic", "Full engine diagnostic scan and analysis", 100, 45),
    DefaultService("Full Service", "Comprehensive vehicle service and inspection", 300, 120),
)

_CATALOGS: dict[str, tuple[DefaultService, ...]] = {
    "DENTIST": DENTIST_SERVICES,
    "MECHANIC": MECHANIC_SERVICES,
}


def default_services(profession: str) -> tuple[DefaultService, ...]:
    """Return the starter catalog for ``profession`` (empty if unknown)."""
    return _CATALOGS.get(profession.strip().upper(), ())
