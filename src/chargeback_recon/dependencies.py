"""FastAPI dependency providers.

Collaborators are built once per process from ``Settings``. Tests replace
them through ``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .connectors import DisputeGateway, OrderLookupClient, build_gateway, build_order_lookup
from .database import get_db
from .reconciliation.resolver import Resolver
from .reconciliation.service import ReconciliationService
from .services import DefenseService
from .store import EventStore, create_event_store
from .webhooks.handlers import IngestionService


def get_settings_dep() -> Settings:
    return get_settings()


@lru_cache(maxsize=1)
def _event_store(path: str, capacity: int) -> EventStore:
    return create_event_store(path, capacity=capacity)


def get_event_store(settings: Settings = Depends(get_settings_dep)) -> EventStore:
    return _event_store(settings.event_store_path, settings.event_store_capacity)


@lru_cache(maxsize=1)
def _order_lookup() -> Optional[OrderLookupClient]:
    return build_order_lookup(get_settings())


def get_order_lookup() -> Optional[OrderLookupClient]:
    return _order_lookup()


@lru_cache(maxsize=1)
def _gateway() -> Optional[DisputeGateway]:
    return build_gateway(get_settings())


def get_gateway() -> Optional[DisputeGateway]:
    return _gateway()


def get_resolver(settings: Settings = Depends(get_settings_dep)) -> Resolver:
    return Resolver(
        tolerance=settings.match_amount_tolerance,
        timeout=settings.order_lookup_timeout,
    )


def get_reconciliation_service(
    store: EventStore = Depends(get_event_store),
    lookup: Optional[OrderLookupClient] = Depends(get_order_lookup),
    resolver: Resolver = Depends(get_resolver),
) -> ReconciliationService:
    return ReconciliationService(store=store, lookup=lookup, resolver=resolver)


def get_ingestion_service(
    store: EventStore = Depends(get_event_store),
    settings: Settings = Depends(get_settings_dep),
) -> IngestionService:
    return IngestionService(
        store=store,
        profiles=settings.signature_profiles(),
        tolerance=settings.match_amount_tolerance,
        topic_header=settings.shopify_topic_header,
    )


def get_defense_service(
    db: AsyncSession = Depends(get_db),
    store: EventStore = Depends(get_event_store),
    gateway: Optional[DisputeGateway] = Depends(get_gateway),
) -> DefenseService:
    return DefenseService(session=db, store=store, gateway=gateway)


async def close_collaborators() -> None:
    """Close HTTP clients built by the providers above."""
    if _order_lookup.cache_info().currsize:
        lookup = _order_lookup()
        if lookup is not None:
            await lookup.aclose()
        _order_lookup.cache_clear()
    if _gateway.cache_info().currsize:
        gateway = _gateway()
        if gateway is not None:
            await gateway.aclose()
        _gateway.cache_clear()
