from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import AllocationExhaustedError
from app.models import Shipment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackingNumberConfig:
    alphabet: str
    length: int
    max_attempts: int

    @classmethod
    def from_settings(cls) -> TrackingNumberConfig:
        return cls(
            alphabet=settings.tracking_number_alphabet,
            length=settings.tracking_number_length,
            max_attempts=settings.tracking_number_max_attempts,
        )


def generate_tracking_number(config: TrackingNumberConfig) -> str:
    return ''.join(secrets.choice(config.alphabet) for _ in range(config.length))


def is_valid_tracking_number(value: str, config: TrackingNumberConfig) -> bool:
    return len(value) == config.length and all(char in config.alphabet for char in value)


def tracking_number_exists(db: Session, tracking_number: str) -> bool:
    found = db.execute(
        select(Shipment.id).where(Shipment.tracking_number == tracking_number)
    ).scalar_one_or_none()
    return found is not None


def allocate_tracking_number(
    db: Session,
    config: TrackingNumberConfig | None = None,
    *,
    generator: Callable[[TrackingNumberConfig], str] = generate_tracking_number,
) -> str:
    """Return a tracking number not used by any stored shipment.

    Nothing is reserved: the unique constraint on shipments.tracking_number
    is what finally guards the insert.
    """
    config = config or TrackingNumberConfig.from_settings()
    for attempt in range(1, config.max_attempts + 1):
        candidate = generator(config)
        if not tracking_number_exists(db, candidate):
            return candidate
        logger.warning('Tracking number collision on attempt %s/%s', attempt, config.max_attempts)
    raise AllocationExhaustedError(
        f'Failed to generate unique tracking number after {config.max_attempts} attempts'
    )
