"""Customer listing service backing the customer list screen."""

from __future__ import annotations

from typing import Optional

from portal.logger import StructuredLogger
from portal.models.user import Customer
from portal.repositories.customer_repository import CustomerRepository
from portal.services.base_service import BaseService


class CustomerService(BaseService):
    """Read-only access to customers and their portal link."""

    def __init__(self, repo: CustomerRepository, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._repo = repo

    def list_customers(self) -> list[Customer]:
        customers = self._repo.get_all()
        self._logger.debug("Loaded %d customers", len(customers))
        return customers

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        return self._repo.get_by_id(customer_id)
