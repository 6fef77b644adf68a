import json
from datetime import datetime, timezone


def test_root(client):
    res = client.get("/")
    assert res.status_code == 200
    assert res.json() == {"message": "Storefront API is running"}


def test_write_endpoint_accepts_text_plain(client):
    body = json.dumps({"action": "registerUser", "name": "Ann", "email": "ann@example.com", "passwordHash": "h1"})
    res = client.post("/api", content=body, headers={"Content-Type": "text/plain"})
    assert res.status_code == 200
    assert res.json() == {"success": True, "userId": "U1"}


def test_write_endpoint_rejects_malformed_body(client):
    res = client.post("/api", content="{action: nope", headers={"Content-Type": "text/plain"})
    assert res.status_code == 200
    assert res.json() == {"success": False, "error": "Invalid request body."}


def test_write_endpoint_unknown_action(client):
    res = client.post("/api", json={"action": "wipe"})
    assert res.json() == {"success": False, "error": "Unknown action: wipe"}


def test_snapshot_of_empty_store(client):
    assert client.get("/api").json() == {"products": [], "categories": [], "banners": [], "coupons": []}


def test_snapshot(client, dispatcher, clock):
    for payload in (
        {"action": "addProduct", "id": "P1", "name": "Ring", "price": 10, "videoURLs": "v.mp4"},
        {"action": "addCategory", "category": "Rings"},
        {"action": "addBanner", "id": "B1", "imageUrl": "b1.jpg", "title": "Sale"},
        {"action": "addBanner", "id": "B2", "imageUrl": "b2.jpg", "active": False},
        {"action": "addCoupon", "code": "live", "discount": 10, "expiryDate": "2030-12-31", "minimumAmount": 100},
        {"action": "addCoupon", "code": "OFF", "discount": 20, "active": False},
        {"action": "addCoupon", "code": "GONE", "discount": 30, "expiryDate": "2020-01-01"},
    ):
        assert dispatcher.dispatch(payload)["success"], payload
    clock.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    data = client.get("/api").json()

    assert data["products"] == [{
        "id": "P1", "name": "Ring", "description": "", "price": 10.0, "coverImage": "",
        "galleryImages": "", "category": "", "videoURLs": "v.mp4",
    }]
    assert data["categories"] == ["Rings"]
    # Inactive banners are still listed, with their flag
    assert [(b["id"], b["active"]) for b in data["banners"]] == [("B1", True), ("B2", False)]
    # Inactive and expired coupons are not advertised
    assert data["coupons"] == [{"code": "LIVE", "discount": 10.0, "expiryDate": "2030-12-31", "minimumAmount": 100.0}]


def test_snapshot_survives_a_broken_table(client, store, monkeypatch):
    from schemas import PRODUCTS

    store.ensure_table(PRODUCTS)
    store.backend.append("Products", ["P1", "Ring", "", 5, "", "", "", ""])
    original = store.find_all

    def flaky(table, predicate=None):
        if table.name == "Categories":
            raise RuntimeError("unreadable")
        return original(table, predicate)

    monkeypatch.setattr(store, "find_all", flaky)
    data = client.get("/api").json()
    assert data["categories"] == []
    assert [p["id"] for p in data["products"]] == ["P1"]


def test_schema(client):
    data = client.get("/schema").json()
    assert set(data) == {"user", "product", "order"}
    assert "userId" in data["user"]["properties"]


def test_store_diagnostics(client, dispatcher, store):
    dispatcher.dispatch({"action": "addCategory", "category": "Rings"})
    data = client.get("/test").json()
    assert data["store_backend"] == store.backend.name
    assert data["tables"] == {"Categories": 1}
