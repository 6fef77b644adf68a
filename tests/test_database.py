import mongomock
import pytest

import database
from database import MemoryBackend, MongoBackend, RecordStore, StoreError, build_store
from schemas import CATEGORIES, COUPONS, PRODUCTS, USERS, Category, Coupon, Product, User


def _user(user_id, name="Ann", email="ann@example.com", **kwargs):
    return User(user_id=user_id, name=name, email=email, **kwargs)


def test_ensure_table_creates_header_once(store):
    backend = store.backend

    store.ensure_table(USERS)
    store.append(USERS, _user("U1"))
    store.ensure_table(USERS)

    assert backend.header("Users") == ["UserID", "Name", "Email", "PasswordHash", "Phone", "CreatedAt", "Cart", "Addresses"]
    assert backend.frozen_rows("Users") == 1
    assert [u.user_id for u in store.rows(USERS)] == ["U1"]


def test_missing_table_reads_as_empty(store):
    assert store.find_all(USERS) == []
    assert store.find_row_by_key(USERS, "U1") is None
    assert store.delete_row(USERS, "U1") is False
    assert store.update_row(USERS, "U1", name="x") is False


def test_append_to_missing_table_is_an_error(store):
    with pytest.raises(StoreError):
        store.append(USERS, _user("U1"))


def test_find_row_by_key_compares_string_forms(store):
    store.ensure_table(PRODUCTS)
    store.backend.append("Products", [42, "Ring", "", 10, "", "", "", ""])

    found = store.find_row_by_key(PRODUCTS, "42")
    assert found is not None
    assert found.id == "42"
    assert store.find_row_by_key(PRODUCTS, 42).name == "Ring"


def test_find_row_by_key_returns_first_match(store):
    store.ensure_table(PRODUCTS)
    store.append(PRODUCTS, Product(id="P1", name="first"))
    store.append(PRODUCTS, Product(id="P1", name="second"))

    assert store.find_row_by_key(PRODUCTS, "P1").name == "first"


def test_update_row_only_touches_named_fields(store):
    store.ensure_table(USERS)
    store.append(USERS, _user("U1", phone="111", cart='[{"id":"A"}]'))

    assert store.update_row(USERS, "U1", phone="555") is True

    user = store.find_row_by_key(USERS, "U1")
    assert user.phone == "555"
    assert user.name == "Ann"
    assert user.cart_items() == [{"id": "A"}]


def test_update_row_rejects_unknown_columns(store):
    store.ensure_table(USERS)
    store.append(USERS, _user("U1"))
    with pytest.raises(StoreError):
        store.update_row(USERS, "U1", nickname="x")


def test_replace_row_overwrites_every_column(store):
    store.ensure_table(PRODUCTS)
    store.append(PRODUCTS, Product(id="P1", name="Ring", description="gold", price=10))

    assert store.replace_row(PRODUCTS, "P1", Product(id="P1", name="Ring v2", price=12)) is True

    product = store.find_row_by_key(PRODUCTS, "P1")
    assert product.name == "Ring v2"
    assert product.description == ""
    assert product.price == 12


def test_delete_row_removes_only_the_match(store):
    store.ensure_table(USERS)
    for user_id in ("U1", "U2", "U3"):
        store.append(USERS, _user(user_id))

    assert store.delete_row(USERS, "U2") is True
    assert store.delete_row(USERS, "U2") is False
    assert [u.user_id for u in store.rows(USERS)] == ["U1", "U3"]


def test_table_key_normalisation(store):
    store.ensure_table(CATEGORIES)
    store.ensure_table(COUPONS)
    store.append(CATEGORIES, Category(name="Rings"))
    store.append(COUPONS, Coupon(code="SAVE10", active=True))

    assert store.find_row_by_key(CATEGORIES, "  Rings ") is not None
    assert store.find_row_by_key(COUPONS, " save10") is not None


def test_unparsable_json_lists_read_as_empty(store):
    store.ensure_table(USERS)
    store.append(USERS, _user("U1", cart="{not json", addresses='{"a": 1}'))

    user = store.find_row_by_key(USERS, "U1")
    assert user.cart_items() == []
    assert user.address_list() == []


def test_short_rows_fill_defaults(store):
    store.ensure_table(USERS)
    store.backend.append("Users", ["U1", "Ann"])

    user = store.find_row_by_key(USERS, "U1")
    assert user.email == ""
    assert user.cart_items() == []


def test_describe_counts_rows(store):
    store.ensure_table(USERS)
    store.append(USERS, _user("U1"))
    store.ensure_table(PRODUCTS)

    assert store.describe() == {"Users": 1, "Products": 0}


def test_mongo_rows_keep_insertion_order_after_writes():
    db = mongomock.MongoClient()["storefront_test"]
    store = RecordStore(MongoBackend(db))
    store.ensure_table(USERS)
    for user_id in ("U1", "U2", "U3", "U4"):
        store.append(USERS, _user(user_id))

    store.update_row(USERS, "U1", name="Ann B")
    store.delete_row(USERS, "U3")

    assert [u.user_id for u in store.rows(USERS)] == ["U1", "U2", "U4"]
    assert db["Users"].find_one({"values.0": "U1"})["values"][1] == "Ann B"
    assert db["_tables"].find_one({"_id": "Users"})["frozen_rows"] == 1


def test_missing_table_has_no_layout(store):
    with pytest.raises(StoreError):
        store.backend.header("Users")
    with pytest.raises(StoreError):
        store.backend.frozen_rows("Users")


def test_build_store_picks_backend(settings, monkeypatch):
    assert isinstance(build_store(settings).backend, MemoryBackend)

    monkeypatch.setattr(database, "MongoClient", mongomock.MongoClient)
    settings.database_url = "mongodb://db.internal:27017"
    store = build_store(settings)
    assert isinstance(store.backend, MongoBackend)
    assert store.backend.db.name == settings.database_name
