"""Business browsing, offers, seeding and deal catching."""

from datetime import timedelta

import pytest

from youfin.extensions import db
from youfin.models import Business, Offer
from youfin.time_utils import utcnow, to_utc_z


def new_business_payload(**overrides) -> dict:
    payload = {
        "name": "Blloku Books",
        "type": "education",
        "lat": 41.3190,
        "lng": 19.8170,
        "address": {"street": "Rruga Pjeter Bogdani", "city": "Tirana"},
        "operatingHours": {"monday": {"open": "09:00", "close": "19:00"}},
        "rating": 4.5,
        "priceLevel": 2,
    }
    payload.update(overrides)
    return payload


class TestBrowse:

    def test_list_and_get(self, client, cafe, bank):
        resp = client.get("/api/businesses")
        assert resp.status_code == 200
        assert [b["name"] for b in resp.get_json()] == [cafe.name, bank.name]

        resp = client.get(f"/api/businesses/{cafe.id}")
        body = resp.get_json()
        assert body["location"] == {"type": "Point", "coordinates": [19.8187, 41.3275]}
        assert [o["title"] for o in body["offers"]] == ["2x1 Espresso"]

    def test_get_unknown(self, client, db_session):
        resp = client.get("/api/businesses/9999")
        assert resp.status_code == 404

    def test_nearby_sorted_with_distance(self, client, cafe, bank):
        resp = client.get("/api/businesses/nearby?lat=41.3275&lng=19.8187&distance=200")
        assert resp.status_code == 200
        rows = resp.get_json()
        assert [r["id"] for r in rows] == [cafe.id, bank.id]
        assert rows[0]["distance"] == 0.0
        assert 50 < rows[1]["distance"] < 200

    def test_nearby_excludes_far(self, client, cafe, bank):
        resp = client.get("/api/businesses/nearby?lat=41.3275&lng=19.8187&distance=10")
        assert [r["id"] for r in resp.get_json()] == [cafe.id]

    def test_nearby_invalid_coordinates(self, client, db_session):
        assert client.get("/api/businesses/nearby?lng=19.8").status_code == 400
        assert client.get("/api/businesses/nearby?lat=95&lng=19.8").status_code == 400
        assert client.get("/api/businesses/nearby?lat=41&lng=19&distance=-5").status_code == 400

    def test_by_type(self, client, cafe, bank):
        resp = client.get("/api/businesses/type/bank")
        assert [b["id"] for b in resp.get_json()] == [bank.id]

    def test_by_unknown_type(self, client, db_session):
        resp = client.get("/api/businesses/type/casino")
        assert resp.status_code == 400

    def test_active_offers_grouped(self, client, cafe, bank, db_session):
        bank.offers.append(Offer(title="Expired", is_active=True, valid_until=utcnow() - timedelta(days=1)))
        bank.offers.append(Offer(title="Inactive", is_active=False))
        db_session.commit()

        resp = client.get("/api/businesses/offers")
        assert resp.status_code == 200
        assert resp.get_json() == [{
            "businessId": cafe.id,
            "businessName": cafe.name,
            "offers": [o.to_dict() for o in cafe.offers],
        }]


class TestCreate:

    def test_create_business(self, client, db_session):
        resp = client.post("/api/businesses", json=new_business_payload())
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["type"] == "education"
        assert body["address"]["country"] == "Albania"
        assert body["operatingHours"]["monday"] == {"open": "09:00", "close": "19:00"}
        assert body["rating"] == 4.5
        assert body["offers"] == []

    def test_create_requires_location(self, client, db_session):
        payload = new_business_payload()
        del payload["lat"]
        resp = client.post("/api/businesses", json=payload)
        assert resp.status_code == 400

    def test_create_without_hours_stores_sql_null(self, client, db_session):
        payload = new_business_payload()
        del payload["operatingHours"]
        resp = client.post("/api/businesses", json=payload)
        assert resp.status_code == 201
        assert resp.get_json()["operatingHours"] is None

        stored = db.session.execute(
            db.text("SELECT operating_hours IS NULL FROM businesses WHERE id = :id"),
            {"id": resp.get_json()["id"]},
        ).scalar()
        assert stored == 1

    def test_create_rejects_bad_type(self, client, db_session):
        resp = client.post("/api/businesses", json=new_business_payload(type="casino"))
        assert resp.status_code == 400

    def test_create_rejects_bad_hours(self, client, db_session):
        resp = client.post(
            "/api/businesses", json=new_business_payload(operatingHours={"funday": {"open": "1"}})
        )
        assert resp.status_code == 400

    def test_create_rejects_price_level(self, client, db_session):
        resp = client.post("/api/businesses", json=new_business_payload(priceLevel=7))
        assert resp.status_code == 400

    def test_add_offer(self, client, cafe):
        valid_until = to_utc_z(utcnow() + timedelta(days=7))
        resp = client.post(
            f"/api/businesses/{cafe.id}/offers",
            json={"title": "Free cookie", "discount": "100%", "validUntil": valid_until},
        )
        assert resp.status_code == 200
        offers = resp.get_json()["offers"]
        assert [o["title"] for o in offers] == ["2x1 Espresso", "Free cookie"]
        assert offers[1]["validUntil"] == valid_until

    def test_add_offer_requires_title(self, client, cafe):
        resp = client.post(f"/api/businesses/{cafe.id}/offers", json={"discount": "5%"})
        assert resp.status_code == 400

    def test_add_offer_rejects_numeric_valid_until(self, client, cafe):
        resp = client.post(
            f"/api/businesses/{cafe.id}/offers", json={"title": "Flash sale", "validUntil": 1735689600}
        )
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "validUntil must be an ISO-8601 datetime"

    def test_add_offer_rejects_object_discount(self, client, cafe):
        resp = client.post(
            f"/api/businesses/{cafe.id}/offers", json={"title": "Flash sale", "discount": {"pct": 10}}
        )
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "discount must be a string"
        assert len(db.session.query(Offer).filter_by(business_id=cafe.id).all()) == 1

    def test_add_offer_numeric_discount_is_text(self, client, cafe):
        resp = client.post(f"/api/businesses/{cafe.id}/offers", json={"title": "Flash sale", "discount": 15})
        assert resp.status_code == 200
        assert resp.get_json()["offers"][-1]["discount"] == "15"

    @pytest.mark.parametrize("field,value", [
        ("description", ["x"]),
        ("budgetCategory", {"a": 1}),
        ("raiffeisenInfo", True),
        ("address", {"street": ["Rruga"], "city": "Tirana"}),
        ("address", {"city": {"name": "Tirana"}}),
    ])
    def test_create_rejects_structured_text_fields(self, client, db_session, field, value):
        resp = client.post("/api/businesses", json=new_business_payload(**{field: value}))
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False
        assert db.session.query(Business).count() == 0

    def test_seed(self, client, db_session):
        resp = client.post("/api/businesses/seed")
        assert resp.status_code == 201
        assert resp.get_json()["count"] == 3
        names = {b.name for b in db.session.query(Business).all()}
        assert names == {"Tirana Coffee Shop", "Raiffeisen Bank - Tirana Main", "TEG Shopping Center"}


class TestCatchDeal:

    def catch(self, client, headers, business, offer_id, location):
        return client.post(
            "/api/businesses/catch-deal",
            json={"businessId": business.id, "offerId": offer_id, "location": location},
            headers=headers,
        )

    def test_catch_within_range(self, client, child, child_headers, cafe):
        offer = cafe.offers[0]
        resp = self.catch(client, child_headers, cafe, offer.id, [41.3276, 19.8188])
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["type"] == "food"
        assert body["distance"] < 100
        assert body["offer"]["claimedBy"] == child.id
        assert body["offer"]["isActive"] is False
        assert body["userHistory"] == []

    def test_offer_can_be_caught_once(self, client, child_headers, parent_headers, cafe):
        offer_id = cafe.offers[0].id
        self.catch(client, child_headers, cafe, offer_id, [41.3275, 19.8187])
        resp = self.catch(client, parent_headers, cafe, offer_id, [41.3275, 19.8187])
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Offer not available"

    def test_too_far(self, client, child_headers, cafe):
        resp = self.catch(client, child_headers, cafe, cafe.offers[0].id, [41.3300, 19.8187])
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Too far from the business to catch this deal"
        db.session.refresh(cafe.offers[0])
        assert cafe.offers[0].is_active is True

    def test_expired_offer(self, client, child_headers, cafe, db_session):
        offer = cafe.offers[0]
        offer.valid_until = utcnow() - timedelta(minutes=1)
        db_session.commit()
        resp = self.catch(client, child_headers, cafe, offer.id, [41.3275, 19.8187])
        assert resp.status_code == 400

    def test_unknown_offer(self, client, child_headers, cafe):
        resp = self.catch(client, child_headers, cafe, 9999, [41.3275, 19.8187])
        assert resp.status_code == 400

    def test_bad_location(self, client, child_headers, cafe):
        resp = self.catch(client, child_headers, cafe, cafe.offers[0].id, {"lat": 41.3})
        assert resp.status_code == 400


class TestAnalyzeDeal:

    def test_fallback_recommendation(self, client, db_session):
        resp = client.post("/api/businesses/analyze-deal", json={"dealType": "food", "userHistory": []})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["recommendation"]
        assert body["source"] == "fallback"

    @pytest.mark.parametrize("amount", ["nan", "inf", "-Infinity", 1e308])
    def test_rejects_non_finite_history_amounts(self, client, db_session, amount):
        resp = client.post(
            "/api/businesses/analyze-deal",
            json={"dealType": "food", "userHistory": [{"amount": amount, "category": "food"}]},
        )
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False
