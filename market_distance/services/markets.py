# Grouping vendors into markets and narrowing lists by distance.

from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from market_distance.core.config import settings
from market_distance.models.dto import MarketEntity, VendorEntity
from market_distance.services.distance_cache import entity_key, make_cache_key
from market_distance.utils.haversine import parse_miles

E = TypeVar("E", bound=MarketEntity)


def group_vendors_by_market(vendors: Sequence[VendorEntity]) -> List[MarketEntity]:
    """
    Collapse vendors that sell at the same market into one market entity.

    Markets are identified by (market name, address); first-seen order is kept.
    Vendors without a market name are skipped.
    """
    markets: Dict[str, MarketEntity] = {}
    for vendor in vendors:
        if not vendor.market_name:
            continue
        key = make_cache_key(vendor.market_name, vendor.address)
        if key not in markets:
            markets[key] = MarketEntity(id=key, name=vendor.market_name, address=vendor.address)
    return list(markets.values())


def filter_within_radius(
    entities: Sequence[E],
    labels: Dict[str, str],
    radius_miles: float = settings.LOCAL_SCOPE_RADIUS_MILES,
    key_of: Optional[Callable[[E], str]] = None,
) -> List[E]:
    """Keep entities whose distance label is within the radius; unknown distances are dropped."""
    key_of = key_of or _default_key
    kept = []
    for entity in entities:
        miles = parse_miles(labels.get(key_of(entity)))
        if miles is not None and miles <= radius_miles:
            kept.append(entity)
    return kept


def sort_by_distance(
    entities: Sequence[E],
    labels: Dict[str, str],
    key_of: Optional[Callable[[E], str]] = None,
) -> List[E]:
    """Nearest first; entities without a known distance go last in their original order."""
    key_of = key_of or _default_key

    def sort_key(entity: E):
        miles: Optional[float] = parse_miles(labels.get(key_of(entity)))
        return (miles is None, miles if miles is not None else 0.0)

    return sorted(entities, key=sort_key)


def _default_key(entity: MarketEntity) -> str:
    return entity_key(entity)
