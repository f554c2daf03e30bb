from __future__ import annotations

import logging
from typing import Callable, Optional

from bevdist.domain.errors import NotFoundError, ValidationError
from bevdist.domain.models import Store
from bevdist.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger(__name__)


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class StoreService:
    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))

    def add_store(
        self,
        name: str,
        address: str,
        contact_name: Optional[str] = None,
        contact_phone: Optional[str] = None,
    ) -> int:
        name = (name or "").strip()
        address = (address or "").strip()
        if not name or not address:
            raise ValidationError("Store name and address are required.")
        with self.uow_factory() as uow:
            store_id = uow.create_store(name, address, _optional_text(contact_name), _optional_text(contact_phone))
        log.info("store_created store_id=%s", store_id)
        return store_id

    def update_store(
        self,
        store_id: int,
        name: Optional[str] = None,
        address: Optional[str] = None,
        contact_name: Optional[str] = None,
        contact_phone: Optional[str] = None,
    ) -> Store:
        """Blank name/address keep the current value; contact fields are replaced when given."""
        current = self.get_store(store_id)
        new_name = (name or "").strip() or current.name
        new_address = (address or "").strip() or current.address
        new_contact = current.contact_name if contact_name is None else _optional_text(contact_name)
        new_phone = current.contact_phone if contact_phone is None else _optional_text(contact_phone)

        if not self.repo.update_store_details(int(store_id), new_name, new_address, new_contact, new_phone):
            raise NotFoundError("Store not found.")
        log.info("store_updated store_id=%s", store_id)
        return self.get_store(store_id)

    def get_store(self, store_id: int) -> Store:
        store = self.repo.get_store_by_id(int(store_id))
        if not store:
            raise NotFoundError("Store not found.")
        return store

    def list_stores(self, search: Optional[str] = None) -> list[Store]:
        return self.repo.list_stores(_optional_text(search))

    def outstanding_stores(self) -> list[Store]:
        return self.repo.list_outstanding_stores()
