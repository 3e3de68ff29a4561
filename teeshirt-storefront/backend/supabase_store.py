"""
Supabase access for the storefront: auth calls and table queries.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx
from supabase import AuthApiError, AuthError, Client, PostgrestAPIError

logger = logging.getLogger(__name__)

ORDER_SELECT = """
    *,
    profiles:user_id (
        email,
        full_name
    ),
    order_items (
        quantity,
        price,
        products (
            name
        )
    )
"""


class StoreError(Exception):
    """A query against the remote tables failed."""


class AuthFailure(Exception):
    def __init__(self, message, duplicate_email=False):
        super().__init__(message)
        self.duplicate_email = duplicate_email


@dataclass(frozen=True)
class RemoteSession:
    identity_id: str
    email: Optional[str]
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None

    @property
    def tokens(self) -> Dict[str, Optional[str]]:
        return {"access_token": self.access_token, "refresh_token": self.refresh_token}


def _remote_session(session, user=None) -> Optional[RemoteSession]:
    if session is None:
        return None
    user = user or session.user
    if user is None:
        return None
    return RemoteSession(
        identity_id=str(user.id),
        email=user.email,
        access_token=session.access_token,
        refresh_token=session.refresh_token,
    )


class AuthGateway:
    """Wraps ``client.auth``."""

    def __init__(self, client: Client):
        self.client = client

    def sign_in(self, email: str, password: str) -> RemoteSession:
        try:
            response = self.client.auth.sign_in_with_password({"email": email, "password": password})
        except AuthApiError as e:
            logger.info(f"Sign in rejected for {email}: {e}")
            raise AuthFailure("Invalid email or password") from e
        remote = _remote_session(response.session, response.user)
        if remote is None:
            raise AuthFailure("Please confirm your email before logging in")
        return remote

    def sign_up(self, email: str, password: str, full_name: str = "") -> Optional[RemoteSession]:
        """Create an account.

        Returns None when the project requires email confirmation and no
        session was issued yet.
        """
        try:
            response = self.client.auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": {"full_name": full_name}},
            })
        except AuthApiError as e:
            if "already registered" in str(e).lower() or getattr(e, "code", None) == "user_already_exists":
                raise AuthFailure("An account with this email already exists", duplicate_email=True) from e
            logger.error(f"Sign up failed for {email}: {e}")
            raise AuthFailure("Could not create account") from e

        user = response.user
        # With email enumeration protection an existing address comes back
        # as a user without identities instead of an error
        if user is not None and user.identities == []:
            raise AuthFailure("An account with this email already exists", duplicate_email=True)
        return _remote_session(response.session, user)

    def get_current_session(self, tokens: Optional[Dict[str, Any]] = None) -> Optional[RemoteSession]:
        try:
            if tokens and tokens.get("access_token") and tokens.get("refresh_token"):
                response = self.client.auth.set_session(tokens["access_token"], tokens["refresh_token"])
                return _remote_session(response.session, response.user)
            return _remote_session(self.client.auth.get_session())
        except (AuthError, httpx.HTTPError) as e:
            logger.info(f"Stored session is no longer valid: {e}")
            return None

    def sign_out(self, tokens: Optional[Dict[str, Any]] = None) -> None:
        try:
            if tokens and tokens.get("access_token") and tokens.get("refresh_token"):
                self.client.auth.set_session(tokens["access_token"], tokens["refresh_token"])
            self.client.auth.sign_out()
        except (AuthError, httpx.HTTPError) as e:
            raise AuthFailure("Sign out failed") from e

    def subscribe(self, callback: Callable[[str, Optional[RemoteSession]], None]):
        def _forward(event, session):
            callback(event, _remote_session(session))

        return self.client.auth.on_auth_state_change(_forward)


class StorefrontStore:
    """Table queries used by the storefront."""

    def __init__(self, client: Client):
        self.client = client

    def _execute(self, query, action: str) -> List[Dict[str, Any]]:
        try:
            result = query.execute()
        except (PostgrestAPIError, httpx.HTTPError) as e:
            logger.error(f"Error {action}: {e}")
            raise StoreError(f"Error {action}") from e
        return result.data or []

    def _first(self, query, action: str) -> Optional[Dict[str, Any]]:
        rows = self._execute(query.limit(1), action)
        return rows[0] if rows else None

    # ---------------- profiles ----------------

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._first(
            self.client.table("profiles").select("*").eq("id", user_id),
            "fetching profile",
        )

    def insert_default_profile(self, user_id: str, email: Optional[str], full_name: Optional[str] = None) -> None:
        self._execute(
            self.client.table("profiles").insert({
                "id": user_id,
                "email": email,
                "full_name": full_name,
                "role": "user",
            }),
            "creating profile",
        )

    def list_profiles(self) -> List[Dict[str, Any]]:
        return self._execute(
            self.client.table("profiles").select("*").order("created_at", desc=True),
            "fetching users",
        )

    # ---------------- products ----------------

    def list_active_products(self) -> List[Dict[str, Any]]:
        return self._execute(
            self.client.table("products").select("*").eq("is_active", True).order("created_at", desc=True),
            "fetching products",
        )

    def get_product(self, product_id) -> Optional[Dict[str, Any]]:
        return self._first(
            self.client.table("products").select("*").eq("id", product_id),
            "fetching product",
        )

    def find_variant_id(self, product_id, color: str, size: str) -> Optional[Any]:
        row = self._first(
            self.client.table("product_variants")
            .select("id")
            .eq("product_id", product_id)
            .eq("color", color)
            .eq("size", size),
            "finding variant",
        )
        return row["id"] if row else None

    # ---------------- cart ----------------

    def add_cart_row(self, user_id: str, product_id, variant_id) -> None:
        """Increment the user's row for this variant, inserting it if missing."""
        existing = self._first(
            self.client.table("cart")
            .select("*")
            .eq("user_id", user_id)
            .eq("product_id", product_id)
            .eq("product_variant_id", variant_id),
            "checking cart",
        )
        if existing:
            self._execute(
                self.client.table("cart").update({"quantity": existing["quantity"] + 1}).eq("id", existing["id"]),
                "updating cart",
            )
        else:
            self._execute(
                self.client.table("cart").insert({
                    "user_id": user_id,
                    "product_id": product_id,
                    "product_variant_id": variant_id,
                    "quantity": 1,
                }),
                "adding to cart",
            )

    # ---------------- favorites ----------------

    def list_favorite_ids(self, user_id: str) -> List[Any]:
        rows = self._execute(
            self.client.table("favorites").select("product_id").eq("user_id", user_id),
            "fetching favorites",
        )
        return [row["product_id"] for row in rows]

    def add_favorite(self, user_id: str, product_id) -> None:
        self._execute(
            self.client.table("favorites").insert({"user_id": user_id, "product_id": product_id}),
            "adding favorite",
        )

    def remove_favorite(self, user_id: str, product_id) -> None:
        self._execute(
            self.client.table("favorites").delete().eq("user_id", user_id).eq("product_id", product_id),
            "removing favorite",
        )

    # ---------------- orders ----------------

    def list_orders(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self.client.table("orders").select(ORDER_SELECT)
        if user_id:
            query = query.eq("user_id", user_id)
        return self._execute(query.order("created_at", desc=True), "fetching orders")

    def update_order_status(self, order_id, status: str) -> None:
        self._execute(
            self.client.table("orders").update({"status": status}).eq("id", order_id),
            "updating order status",
        )

    def delete_order(self, order_id) -> None:
        self._execute(
            self.client.table("orders").delete().eq("id", order_id),
            "deleting order",
        )
