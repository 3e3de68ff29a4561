"""
Shared fixtures: in-memory stand-ins for the Supabase auth and table gateways
plus a Flask test client wired to them.
"""
import json
from urllib.parse import urlparse

import pytest

import storefront_app
from supabase_store import AuthFailure, RemoteSession, StoreError

USER_ID = "11111111-1111-1111-1111-111111111111"
ADMIN_ID = "22222222-2222-2222-2222-222222222222"


class FakeSubscription:
    def __init__(self, auth, callback):
        self.auth = auth
        self.callback = callback

    def unsubscribe(self):
        self.auth.callbacks.remove(self.callback)


class FakeAuth:
    def __init__(self):
        self.accounts = {}
        self.valid_tokens = {}
        self.callbacks = []
        self.signed_out = []
        self.sign_out_error = None

    def add_account(self, user_id, email, password):
        self.accounts[email] = {"id": user_id, "password": password}

    def _issue(self, user_id, email):
        remote = RemoteSession(identity_id=user_id, email=email,
                               access_token=f"access-{user_id}", refresh_token=f"refresh-{user_id}")
        self.valid_tokens[remote.access_token] = remote
        return remote

    def sign_in(self, email, password):
        account = self.accounts.get(email)
        if not account or account["password"] != password:
            raise AuthFailure("Invalid email or password")
        return self._issue(account["id"], email)

    def sign_up(self, email, password, full_name=""):
        if email in self.accounts:
            raise AuthFailure("An account with this email already exists", duplicate_email=True)
        user_id = f"new-{len(self.accounts) + 1}"
        self.add_account(user_id, email, password)
        return self._issue(user_id, email)

    def get_current_session(self, tokens=None):
        if not tokens:
            return None
        return self.valid_tokens.get(tokens.get("access_token"))

    def sign_out(self, tokens=None):
        if self.sign_out_error:
            raise self.sign_out_error
        self.signed_out.append(tokens)
        if tokens:
            self.valid_tokens.pop(tokens.get("access_token"), None)

    def subscribe(self, callback):
        self.callbacks.append(callback)
        return FakeSubscription(self, callback)

    def emit(self, event, remote=None):
        for callback in list(self.callbacks):
            callback(event, remote)


class FakeStore:
    def __init__(self):
        self.profiles = {}
        self.products = []
        self.variants = []
        self.cart_rows = []
        self.favorites = []
        self.orders = []
        self.profile_fetch_errors = 0
        self.profile_fetch_calls = 0
        self.fail_profile_insert = False
        self.fail_products = False

    # profiles
    def get_profile(self, user_id):
        self.profile_fetch_calls += 1
        if self.profile_fetch_errors > 0:
            self.profile_fetch_errors -= 1
            raise StoreError("Error fetching profile")
        return self.profiles.get(user_id)

    def insert_default_profile(self, user_id, email, full_name=None):
        if self.fail_profile_insert:
            raise StoreError("Error creating profile")
        self.profiles[user_id] = {"id": user_id, "email": email, "full_name": full_name, "role": "user"}

    def list_profiles(self):
        return list(self.profiles.values())

    # products
    def list_active_products(self):
        if self.fail_products:
            raise StoreError("Error fetching products")
        return [p for p in self.products if p.get("is_active", True)]

    def get_product(self, product_id):
        for product in self.products:
            if str(product["id"]) == str(product_id):
                return product
        return None

    def find_variant_id(self, product_id, color, size):
        for variant in self.variants:
            if (variant["product_id"], variant["color"], variant["size"]) == (product_id, color, size):
                return variant["id"]
        return None

    # cart
    def add_cart_row(self, user_id, product_id, variant_id):
        for row in self.cart_rows:
            if (row["user_id"], row["product_id"], row["product_variant_id"]) == (user_id, product_id, variant_id):
                row["quantity"] += 1
                return
        self.cart_rows.append({"user_id": user_id, "product_id": product_id,
                               "product_variant_id": variant_id, "quantity": 1})

    # favorites
    def list_favorite_ids(self, user_id):
        return [f["product_id"] for f in self.favorites if f["user_id"] == user_id]

    def add_favorite(self, user_id, product_id):
        self.favorites.append({"user_id": user_id, "product_id": product_id})

    def remove_favorite(self, user_id, product_id):
        self.favorites = [f for f in self.favorites
                          if not (f["user_id"] == user_id and f["product_id"] == product_id)]

    # orders
    def list_orders(self, user_id=None):
        return [o for o in self.orders if user_id is None or o["user_id"] == user_id]

    def update_order_status(self, order_id, status):
        for order in self.orders:
            if str(order["id"]) == str(order_id):
                order["status"] = status

    def delete_order(self, order_id):
        self.orders = [o for o in self.orders if str(o["id"]) != str(order_id)]


@pytest.fixture
def fake_auth():
    auth = FakeAuth()
    auth.add_account(USER_ID, "juan@example.com", "secret123")
    auth.add_account(ADMIN_ID, "admin@example.com", "admin123")
    return auth


@pytest.fixture
def fake_store():
    store = FakeStore()
    store.profiles[USER_ID] = {"id": USER_ID, "email": "juan@example.com", "full_name": "Juan Cruz", "role": "user"}
    store.profiles[ADMIN_ID] = {"id": ADMIN_ID, "email": "admin@example.com", "full_name": "Ana Admin", "role": "admin"}
    store.products = [
        {"id": 1, "name": "Classic Tee", "price": 350, "category": "Unisex", "image_url": "/img/classic.png"},
        {"id": 2, "name": "Fitted Tee", "price": 420, "category": "Women's", "image_url": "/img/fitted.png"},
        {"id": 3, "name": "Boxy Tee", "price": 399, "category": "Men's", "image_url": "/img/boxy.png"},
    ]
    store.variants = [
        {"id": 101, "product_id": 1, "color": "Black", "size": "M"},
        {"id": 102, "product_id": 1, "color": "White", "size": "L"},
        {"id": 201, "product_id": 2, "color": "Pink", "size": "S"},
    ]
    store.orders = [
        {"id": "ord-1", "user_id": USER_ID, "total": "700.00", "status": "delivered",
         "created_at": "2024-05-01T10:00:00+00:00",
         "profiles": {"email": "juan@example.com", "full_name": "Juan Cruz"},
         "order_items": [{"quantity": 2, "price": 350, "products": {"name": "Classic Tee"}}]},
        {"id": "ord-2", "user_id": ADMIN_ID, "total": "420.00", "status": "pending",
         "created_at": "2024-05-02T10:00:00+00:00",
         "profiles": {"email": "admin@example.com", "full_name": "Ana Admin"},
         "order_items": [{"quantity": 1, "price": 420, "products": {"name": "Fitted Tee"}}]},
    ]
    return store


@pytest.fixture
def app(monkeypatch, fake_auth, fake_store):
    monkeypatch.setattr(storefront_app, "get_auth", lambda: fake_auth)
    monkeypatch.setattr(storefront_app, "get_store", lambda: fake_store)
    storefront_app.app.config.update(
        TESTING=True,
        SECRET_KEY="test-secret",
        PROFILE_RETRY_ATTEMPTS=3,
        PROFILE_RETRY_DELAY=0,
    )
    return storefront_app.app


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, email="juan@example.com", password="secret123"):
    return client.post("/login", data={"email": email, "password": password})


def location_path(response):
    return urlparse(response.headers["Location"]).path


def cached_auth(client):
    with client.session_transaction() as sess:
        raw = sess.get("auth")
    return json.loads(raw) if raw else None
