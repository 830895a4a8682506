"""
Alert metadata — typed shapes per category with an opaque fallback.
"""

import pytest

from alerts.metadata import (
    CompetitiveMetadata,
    NetworkMetadata,
    OpaqueMetadata,
    PerformanceMetadata,
    coerce_metadata,
    dump_metadata,
    load_metadata,
)


class TestCoerceMetadata:
    def test_competitive_from_camel_case(self):
        meta = coerce_metadata("competitive", {"competitor": "Ryanair", "priceChange": -25, "previousPrice": 120, "newPrice": 90})
        assert isinstance(meta, CompetitiveMetadata)
        assert meta.price_change == -25
        assert meta.new_price == 90

    def test_competitive_from_snake_case(self):
        meta = coerce_metadata("competitive", {"competitor": "easyJet", "price_change": 5})
        assert isinstance(meta, CompetitiveMetadata)

    def test_performance_shape(self):
        meta = coerce_metadata("performance", {"demandIncrease": 20, "loadFactor": 89, "opportunity": "pricing"})
        assert isinstance(meta, PerformanceMetadata)
        assert meta.load_factor == 89

    def test_network_shape(self):
        meta = coerce_metadata("network", {"fromRoute": "LGW→MAD", "toRoute": "STN→BCN", "capacityChange": 2})
        assert isinstance(meta, NetworkMetadata)

    def test_mismatched_payload_kept_opaque(self):
        raw = {"fromRoute": "LGW→MAD", "toRoute": "STN→BCN"}
        meta = coerce_metadata("competitive", raw)
        assert isinstance(meta, OpaqueMetadata)
        assert meta.payload == raw

    def test_extra_keys_kept_opaque(self):
        meta = coerce_metadata("competitive", {"competitor": "Ryanair", "priceChange": -5, "source": "infare"})
        assert isinstance(meta, OpaqueMetadata)
        assert meta.payload["source"] == "infare"

    def test_tagged_payload_wins_over_category(self):
        meta = coerce_metadata("competitive", {"kind": "network", "fromRoute": "A", "toRoute": "B"})
        assert isinstance(meta, NetworkMetadata)

    def test_bad_tagged_payload_kept_whole(self):
        raw = {"kind": "competitive", "competitor": "Ryanair"}
        meta = coerce_metadata("competitive", raw)
        assert isinstance(meta, OpaqueMetadata)
        assert meta.payload == raw

    def test_unknown_tag_is_kept_in_payload(self):
        raw = {"kind": "seasonal", "note": "summer"}
        meta = coerce_metadata("performance", raw)
        assert isinstance(meta, OpaqueMetadata)
        assert meta.payload == raw
        assert load_metadata("performance", dump_metadata(meta)) == {"kind": "opaque", "payload": raw}

    def test_malformed_opaque_row_unwrapped(self):
        meta = coerce_metadata("network", {"kind": "opaque", "note": "free-form"})
        assert meta.payload == {"note": "free-form"}

    @pytest.mark.parametrize("raw", [None, {}])
    def test_empty_is_empty_opaque(self, raw):
        meta = coerce_metadata("network", raw)
        assert isinstance(meta, OpaqueMetadata)
        assert meta.payload == {}


class TestDumpAndLoad:
    def test_dump_uses_camel_case_and_skips_none(self):
        meta = CompetitiveMetadata(competitor="Vueling", price_change=-12)
        assert dump_metadata(meta) == {"kind": "competitive", "competitor": "Vueling", "priceChange": -12}

    def test_load_is_stable_on_already_tagged_rows(self):
        stored = dump_metadata(coerce_metadata("performance", {"demandIncrease": 15}))
        assert load_metadata("performance", stored) == stored

    def test_load_legacy_untagged_row(self):
        assert load_metadata("network", {"fromRoute": "A", "toRoute": "B"}) == {
            "kind": "network",
            "fromRoute": "A",
            "toRoute": "B",
        }
