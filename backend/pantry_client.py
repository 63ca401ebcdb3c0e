"""
pantry_client.py

A small API client for the Pizza Pantry backend (JWT login + authenticated
requests) with an explicit query cache.

What it provides:
- PantryApiClient: constructed with its base URL, headers and cache; nothing global.
- QueryCache: keyed results with a TTL; every successful mutation invalidates
  the "inventory" keys so the next read hits the API.
- adjust_quantity() sends an idempotency key and retries once on 503 with the
  same key, so a timed-out adjustment is never applied twice.

Environment variables (make_client_from_env):
- PANTRY_API_URL: e.g. "https://your-domain.com/api"
- PANTRY_API_EMAIL / PANTRY_API_PASSWORD: account used for /auth/jwt/login
- PANTRY_API_TOKEN: optional pre-issued token

Dependencies:
- requests (pip install requests)
"""

from __future__ import annotations

import os
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

import requests


INVENTORY = "inventory"


class ApiError(RuntimeError):
    def __init__(self, status_code: int, kind: str, message: str, payload: Any = None):
        super().__init__(f"{kind} ({status_code}): {message}")
        self.status_code = status_code
        self.kind = kind
        self.message = message
        self.payload = payload

    @property
    def retryable(self) -> bool:
        return self.status_code == 503


@dataclass
class QueryCache:
    ttl_seconds: float = 300.0
    clock: Callable[[], float] = time.monotonic
    _entries: Dict[Tuple[Hashable, ...], Tuple[float, Any]] = field(default_factory=dict)

    def get(self, key: Tuple[Hashable, ...]) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self.clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: Tuple[Hashable, ...], value: Any) -> None:
        self._entries[key] = (self.clock(), value)

    def get_or_fetch(self, key: Tuple[Hashable, ...], fetch: Callable[[], Any]) -> Any:
        value = self.get(key)
        if value is None:
            value = fetch()
            self.set(key, value)
        return value

    def invalidate(self, prefix: Tuple[Hashable, ...] = ()) -> int:
        """Drop every key starting with ``prefix`` (all keys for ``()``)."""
        stale = [k for k in self._entries if k[: len(prefix)] == prefix]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def __contains__(self, key) -> bool:
        return self.get(key) is not None


@dataclass
class PantryApiClient:
    base_url: str
    email: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    cache: QueryCache = field(default_factory=QueryCache)
    http: Any = field(default_factory=requests.Session)
    timeout: float = 30

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", **self.headers}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def login(self) -> str:
        """
        FastAPI-Users JWT login endpoint.
        The backend uses: POST /auth/jwt/login with form fields: username, password
        """
        if not self.email or not self.password:
            raise ApiError(401, "unauthorized", "No credentials configured for login")
        resp = self.http.request(
            "POST",
            self._url("/auth/jwt/login"),
            data={"username": self.email, "password": self.password},
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )
        if resp.status_code >= 400:
            raise ApiError(resp.status_code, "unauthorized", "Login failed")
        token = resp.json().get("access_token")
        if not token:
            raise ApiError(resp.status_code, "unauthorized", "Login response missing access_token")
        self.token = token
        return token

    def _send(self, method: str, path: str, json: Any, params: Optional[Dict[str, Any]]):
        return self.http.request(
            method,
            self._url(path),
            json=json,
            params=params,
            headers=self._headers(),
            timeout=self.timeout,
        )

    def _request(self, method: str, path: str, *, json: Any = None, params: Dict[str, Any] | None = None) -> Any:
        if not self.token and self.email:
            self.login()

        resp = self._send(method, path, json, params)

        # If token expired, retry once with a fresh login.
        if resp.status_code == 401 and self.email:
            self.login()
            resp = self._send(method, path, json, params)

        if resp.status_code >= 400:
            raise _error_from(resp)

        if resp.status_code == 204:
            return None
        return resp.json()

    # ----------------------------
    # Reads (cached)
    # ----------------------------

    def list_items(self, *, q: Optional[str] = None, category: Optional[str] = None, low_stock: bool = False) -> Any:
        params: Dict[str, Any] = {}
        if q:
            params["q"] = q
        if category:
            params["category"] = category
        if low_stock:
            params["low_stock"] = "true"
        key = (INVENTORY, "list", q or "", category or "", low_stock)
        return self.cache.get_or_fetch(key, lambda: self._request("GET", "/inventory", params=params or None))

    def get_item(self, item_id: str) -> Any:
        return self.cache.get_or_fetch(
            (INVENTORY, str(item_id)), lambda: self._request("GET", f"/inventory/{item_id}")
        )

    def list_adjustments(self, item_id: str, *, limit: int = 50) -> Any:
        return self.cache.get_or_fetch(
            (INVENTORY, str(item_id), "adjustments", limit),
            lambda: self._request("GET", f"/inventory/{item_id}/adjustments", params={"limit": limit}),
        )

    def get_options(self) -> Any:
        return self.cache.get_or_fetch(("options",), lambda: self._request("GET", "/inventory/options"))

    # ----------------------------
    # Mutations (invalidate inventory keys on success)
    # ----------------------------

    def create_item(
        self,
        *,
        name: str,
        category: str,
        quantity: float,
        min_stock: float,
        unit: str,
        price: float,
        supplier: str,
    ) -> Any:
        payload = {
            "name": name,
            "category": category,
            "quantity": quantity,
            "min_stock": min_stock,
            "unit": unit,
            "price": price,
            "supplier": supplier,
        }
        out = self._request("POST", "/inventory", json=payload)
        self.cache.invalidate((INVENTORY,))
        return out

    def update_item(self, item_id: str, **fields: Any) -> Any:
        """Calls: PATCH /inventory/{id}. Quantity is refused by the backend; use adjust_quantity."""
        out = self._request("PATCH", f"/inventory/{item_id}", json=fields)
        self.cache.invalidate((INVENTORY,))
        return out

    def adjust_quantity(
        self,
        item_id: str,
        *,
        delta: float,
        reason: str,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """
        Calls: POST /inventory/{id}/adjust

        A 503 (storage timeout) is retried once with the same idempotency key.
        """
        payload = {
            "delta": delta,
            "reason": reason,
            "idempotency_key": idempotency_key or uuid.uuid4().hex,
        }
        path = f"/inventory/{item_id}/adjust"
        try:
            out = self._request("POST", path, json=payload)
        except ApiError as e:
            if not e.retryable:
                raise
            out = self._request("POST", path, json=payload)
        self.cache.invalidate((INVENTORY,))
        return out

    def delete_item(self, item_id: str) -> None:
        self._request("DELETE", f"/inventory/{item_id}")
        self.cache.invalidate((INVENTORY,))


def _error_from(resp) -> ApiError:
    try:
        body = resp.json()
    except ValueError:
        body = None
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, dict):
        return ApiError(resp.status_code, detail.get("kind", "error"), detail.get("message", ""), detail)
    if isinstance(detail, list):
        # FastAPI request validation
        return ApiError(resp.status_code, "validation_error", "Invalid request", detail)
    return ApiError(resp.status_code, "error", str(detail or f"HTTP {resp.status_code}"), body)


def make_client_from_env() -> PantryApiClient:
    base_url = os.getenv("PANTRY_API_URL", "").strip()
    email = os.getenv("PANTRY_API_EMAIL", "").strip() or None
    password = os.getenv("PANTRY_API_PASSWORD", "").strip() or None
    token = os.getenv("PANTRY_API_TOKEN", "").strip() or None

    if not base_url:
        raise RuntimeError("Missing PANTRY_API_URL")
    if not token and not (email and password):
        raise RuntimeError("Set PANTRY_API_TOKEN or PANTRY_API_EMAIL + PANTRY_API_PASSWORD")

    return PantryApiClient(base_url=base_url, email=email, password=password, token=token)


if __name__ == "__main__":
    client = make_client_from_env()
    for item in client.list_items(low_stock=True):
        print(f"LOW: {item['name']} {item['quantity']} {item['unit']} (min {item['min_stock']})")
