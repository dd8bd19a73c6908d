from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List

from ..models import OrderRecord


class OrderLookupError(Exception):
    """The order lookup collaborator failed or timed out."""


class GatewaySubmissionError(Exception):
    """The payment gateway refused or failed to accept a defense."""


def normalize_order_name(name: str) -> str:
    """Platform order names carry a leading '#': '1234' -> '#1234'."""
    name = name.strip()
    return name if name.startswith("#") else f"#{name}"


class OrderLookupClient(ABC):
    """
    Read-only access to the e-commerce platform's orders. Implementations
    should raise OrderLookupError on transport or API failures and never
    return partial results.
    """

    @abstractmethod
    async def get_order_by_name(self, name: str) -> Optional[OrderRecord]:
        """
        Exact lookup by human order number ('#1234' or '1234').
        """
        raise NotImplementedError

    @abstractmethod
    async def get_orders_by_email(self, email: str) -> List[OrderRecord]:
        """
        All orders placed with this customer email, in platform return order.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class DisputeGateway(ABC):
    """
    Hand-off of a defense document to the payment gateway.
    """

    @abstractmethod
    async def submit_defense(
        self,
        dispute_id: str,
        evidence: bytes,
        document_type: str = "document",
    ) -> Dict[str, Any]:
        """
        Submit evidence for a dispute; return the gateway's response payload.
        Raises GatewaySubmissionError when the gateway does not accept it.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
