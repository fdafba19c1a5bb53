"""
Provider service for provider record management.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from core.config import DEFAULT_TIMEZONE
from core.constants import DEFAULT_SLOT_MINUTES
from core.exceptions import ProviderNotFoundError
from models import Provider
from utils.datetime_utils import resolve_timezone

logger = logging.getLogger(__name__)


def normalize_skills(skills: Optional[List[str]]) -> List[str]:
    """Strip blanks and duplicates while keeping the first occurrence order."""
    result: List[str] = []
    for skill in skills or []:
        value = (skill or "").strip()
        if value and value not in result:
            result.append(value)
    return result


class ProviderService:
    """Service class for provider operations."""

    @staticmethod
    def create_provider(
        db: Session,
        name: str,
        timezone: Optional[str] = None,
        skills: Optional[List[str]] = None,
        default_slot_minutes: int = DEFAULT_SLOT_MINUTES,
        buffer_before_minutes: int = 0,
        buffer_after_minutes: int = 0,
        default_durations: Optional[Dict[str, int]] = None,
        is_active: bool = True,
    ) -> Provider:
        """
        Create a provider.

        The provider's zone defaults to DEFAULT_TIMEZONE when not given.

        Raises:
            TimezoneResolutionError: If `timezone` is not a known IANA zone
        """
        timezone = timezone or DEFAULT_TIMEZONE
        resolve_timezone(timezone)

        provider = Provider(
            name=name.strip(),
            timezone=timezone.strip(),
            skills=normalize_skills(skills),
            default_slot_minutes=default_slot_minutes,
            buffer_before_minutes=buffer_before_minutes,
            buffer_after_minutes=buffer_after_minutes,
            default_durations=dict(default_durations or {}),
            is_active=is_active,
        )
        db.add(provider)
        db.commit()
        db.refresh(provider)

        logger.info(f"Created provider {provider.id} ({provider.name}, {provider.timezone})")
        return provider

    @staticmethod
    def get_provider(db: Session, provider_id: int) -> Provider:
        """
        Get a provider by ID.

        Raises:
            ProviderNotFoundError: If the provider does not exist
        """
        provider = db.query(Provider).filter(Provider.id == provider_id).first()
        if not provider:
            raise ProviderNotFoundError(f"Provider {provider_id} not found")
        return provider

    @staticmethod
    def list_providers(db: Session, skill: Optional[str] = None, include_inactive: bool = False) -> List[Provider]:
        query = db.query(Provider)
        if not include_inactive:
            query = query.filter(Provider.is_active == True)  # noqa: E712
        providers = query.order_by(Provider.id).all()
        if skill:
            providers = [p for p in providers if p.has_skill(skill)]
        return providers

    @staticmethod
    def update_provider(db: Session, provider_id: int, **fields: Any) -> Provider:
        """
        Update provider fields. Only keys with non-None values are applied.

        Raises:
            ProviderNotFoundError: If the provider does not exist
            TimezoneResolutionError: If a new timezone is not a known IANA zone
        """
        provider = ProviderService.get_provider(db, provider_id)

        if fields.get("timezone") is not None:
            resolve_timezone(fields["timezone"])
            fields["timezone"] = fields["timezone"].strip()
        if fields.get("skills") is not None:
            fields["skills"] = normalize_skills(fields["skills"])

        for key, value in fields.items():
            if value is not None and hasattr(Provider, key):
                setattr(provider, key, value)

        db.commit()
        db.refresh(provider)
        logger.info(f"Updated provider {provider_id}: {sorted(k for k, v in fields.items() if v is not None)}")
        return provider

    @staticmethod
    def provider_to_dict(provider: Provider) -> Dict[str, Any]:
        return {
            "id": provider.id,
            "name": provider.name,
            "timezone": provider.timezone,
            "skills": list(provider.skills or []),
            "is_active": provider.is_active,
            "default_slot_minutes": provider.default_slot_minutes,
            "buffer_before_minutes": provider.buffer_before_minutes,
            "buffer_after_minutes": provider.buffer_after_minutes,
            "default_durations": dict(provider.default_durations or {}),
        }
