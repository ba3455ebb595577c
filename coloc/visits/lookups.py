"""Lookups for collaborators that live outside the visit engine.

Housing records and the user directory are consumed through these small
interfaces. The ORM-backed defaults can be swapped through the
HOUSING_LOOKUP and DIRECTORY_LOOKUP settings.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.db import DatabaseError
from django.utils.module_loading import import_string

from .exceptions import DependencyUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HousingRecord:
    id: str
    owner_id: Optional[int]
    title: str
    address: str = ''


@dataclass(frozen=True)
class DirectoryEntry:
    id: int
    display_name: str
    contact: str = ''


class HousingLookup(ABC):

    @abstractmethod
    def find_by_id_or_external_key(self, key: str) -> Optional[HousingRecord]:
        """Return the housing for an internal id or external listing key, or None.

        Raises DependencyUnavailable when the backing store cannot be reached.
        """

    @abstractmethod
    def owned_housing_ids(self, owner_id) -> list:
        """Ids of every housing owned by a user."""


class DirectoryLookup(ABC):

    @abstractmethod
    def find_by_id(self, user_id: int) -> Optional[DirectoryEntry]:
        """Return the directory entry for a user id, or None."""


class ORMHousingLookup(HousingLookup):

    def find_by_id_or_external_key(self, key):
        from housing.models import Housing

        key = str(key).strip()
        if not key:
            return None
        try:
            housing = None
            # Internal ids are numeric; anything else is an external key.
            if key.isdigit():
                housing = Housing.objects.filter(pk=int(key)).first()
            if housing is None:
                housing = Housing.objects.filter(external_key=key).first()
        except DatabaseError as exc:
            raise DependencyUnavailable(f'Housing lookup failed: {exc}') from exc

        if housing is None:
            return None
        return HousingRecord(
            id=str(housing.pk),
            owner_id=housing.owner_id,
            title=housing.title,
            address=housing.address,
        )

    def owned_housing_ids(self, owner_id):
        from housing.models import Housing

        try:
            pks = Housing.objects.filter(owner_id=owner_id).values_list('pk', flat=True)
            return [str(pk) for pk in pks]
        except DatabaseError as exc:
            raise DependencyUnavailable(f'Housing lookup failed: {exc}') from exc


class ORMDirectoryLookup(DirectoryLookup):

    def find_by_id(self, user_id):
        from django.contrib.auth import get_user_model

        User = get_user_model()
        try:
            user = User.objects.filter(pk=user_id).first()
        except DatabaseError as exc:
            raise DependencyUnavailable(f'Directory lookup failed: {exc}') from exc
        if user is None:
            return None
        return DirectoryEntry(
            id=user.pk,
            display_name=user.display_name,
            contact=user.phone or user.email,
        )


def get_housing_lookup() -> HousingLookup:
    return import_string(settings.HOUSING_LOOKUP)()


def get_directory_lookup() -> DirectoryLookup:
    return import_string(settings.DIRECTORY_LOOKUP)()


# ---------------------------------------------------------------------------
# Helpers used across the engine
# ---------------------------------------------------------------------------

def find_housing(housing_id) -> Optional[HousingRecord]:
    """Resolve a housing record, logging and swallowing lookup failures."""
    try:
        return get_housing_lookup().find_by_id_or_external_key(housing_id)
    except DependencyUnavailable:
        logger.warning('Housing lookup unavailable for %s', housing_id, exc_info=True)
        return None


def resolve_host_id(visit) -> Optional[int]:
    """Owner of the visit's housing, or None when it cannot be resolved."""
    housing = find_housing(visit.housing_id)
    if housing is None:
        return None
    return housing.owner_id


def display_name_for(user_id, default='') -> str:
    try:
        entry = get_directory_lookup().find_by_id(user_id)
    except DependencyUnavailable:
        logger.warning('Directory lookup unavailable for user %s', user_id, exc_info=True)
        return default
    return entry.display_name if entry else default
