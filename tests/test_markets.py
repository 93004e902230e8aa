"""Market grouping and distance-based narrowing."""

from market_distance.models.dto import DISTANCE_UNKNOWN, MarketEntity, VendorEntity
from market_distance.services.distance_cache import entity_key
from market_distance.services.markets import filter_within_radius, group_vendors_by_market, sort_by_distance


def vendor(vid: str, market: str, address: str) -> VendorEntity:
    return VendorEntity(id=vid, name=f"Vendor {vid}", address=address, market_name=market)


class TestGrouping:
    def test_vendors_at_same_market_collapse(self):
        vendors = [
            vendor("1", "Pearl Farmers Market", "312 Pearl Pkwy"),
            vendor("2", "Pearl  Farmers Market", "312 Pearl Pkwy"),
            vendor("3", "Legacy Market", "1 Legacy Dr"),
            vendor("4", "", "somewhere"),
        ]

        grouped = group_vendors_by_market(vendors)

        assert [m.name for m in grouped] == ["Pearl Farmers Market", "Legacy Market"]
        assert grouped[0].id == "pearl-farmers-market-312-pearl-pkwy"
        assert entity_key(grouped[0]) == grouped[0].id


class TestRadius:
    def setup_method(self):
        self.near = MarketEntity(id="1", name="Near", address="a")
        self.far = MarketEntity(id="2", name="Far", address="b")
        self.unknown = MarketEntity(id="3", name="Unknown", address="c")
        self.labels = {
            entity_key(self.near): "3.2 mi",
            entity_key(self.far): "61.0 mi",
            entity_key(self.unknown): DISTANCE_UNKNOWN,
        }

    def test_default_local_scope(self):
        kept = filter_within_radius([self.near, self.far, self.unknown], self.labels)
        assert kept == [self.near]

    def test_wider_radius(self):
        kept = filter_within_radius([self.near, self.far, self.unknown], self.labels, radius_miles=100)
        assert kept == [self.near, self.far]

    def test_sort_unknown_last(self):
        ordered = sort_by_distance([self.unknown, self.far, self.near], self.labels)
        assert ordered == [self.near, self.far, self.unknown]

    def test_custom_key(self):
        labels = {"1": "1.0 mi", "2": "0.5 mi"}
        ordered = sort_by_distance([self.near, self.far], labels, key_of=lambda e: e.id)
        assert ordered == [self.far, self.near]
