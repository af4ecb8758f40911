from decimal import Decimal

import pytest

from core.exceptions import ResourceNotFoundError
from services.zone_matcher import ZoneMatcher


def test_candidates_favour_rating_then_lighter_load(db, factory):
    zone = factory.zone()
    busy_star = factory.courier(zone=zone, rating=4.8, total_deliveries=120)
    fresh_star = factory.courier(zone=zone, rating=4.8, total_deliveries=3)
    average = factory.courier(zone=zone, rating=3.9, total_deliveries=0)
    factory.courier(zone=zone, rating=5.0, available=False)
    factory.courier(zone=zone, rating=5.0, verified=False)
    factory.courier(zone=factory.zone(), rating=5.0)

    candidates = ZoneMatcher(db).candidates_for_zone(zone.id)

    assert [c.id for c in candidates] == [fresh_star.id, busy_star.id, average.id]


def test_zone_browsing_shows_most_experienced_first(db, factory):
    zone = factory.zone()
    busy_star = factory.courier(zone=zone, rating=4.8, total_deliveries=120)
    fresh_star = factory.courier(zone=zone, rating=4.8, total_deliveries=3)
    average = factory.courier(zone=zone, rating=3.9, total_deliveries=500)

    browsed = ZoneMatcher(db).browse_zone(zone.id)

    assert [c.id for c in browsed] == [busy_star.id, fresh_star.id, average.id]


def test_order_without_zone_matches_every_available_courier(db, factory):
    north, south = factory.zone(), factory.zone()
    a = factory.courier(zone=north, rating=4.0)
    b = factory.courier(zone=south, rating=4.5)
    factory.courier(zone=south, available=False)
    order = factory.order()

    candidates = ZoneMatcher(db).candidates_for_order(order)

    assert [c.id for c in candidates] == [b.id, a.id]


def test_order_with_zone_matches_only_that_zone(db, factory):
    north, south = factory.zone(), factory.zone()
    local = factory.courier(zone=north)
    factory.courier(zone=south)
    order = factory.order(zone=north)

    assert [c.id for c in ZoneMatcher(db).candidates_for_order(order)] == [local.id]


def test_active_zones_cheapest_first(db, factory):
    pricey = factory.zone(fee="2500.00")
    cheap = factory.zone(fee="500.00")
    closed = factory.zone(fee="100.00")
    closed.is_active = False
    db.commit()

    assert [z.id for z in ZoneMatcher(db).active_zones()] == [cheap.id, pricey.id]


def test_quote(db, factory):
    zone = factory.zone(fee="1500.00", hours=48, name="Inner Suburbs")

    quote = ZoneMatcher(db).quote(zone.id)

    assert quote["zone_name"] == "Inner Suburbs"
    assert Decimal(quote["delivery_fee"]) == Decimal("1500.00")
    assert quote["estimated_delivery_hours"] == 48

    with pytest.raises(ResourceNotFoundError):
        ZoneMatcher(db).quote(9999)
