"""
Storefront REST client

Wraps an httpx client with the behaviour the storefront expects from its
API layer:

* the stored access token is sent as a bearer token;
* a 401 triggers one token refresh and one replay of the request, and a
  failed refresh clears the session;
* `{success, data}` envelopes are unwrapped and everything else that is
  not a 2xx becomes an `ApiError`.
"""
import logging
import time
from typing import Any, Dict, List, Optional, Union

import httpx

from config import API_BASE_URL, REQUEST_TIMEOUT
from schemas import AuthResponse, Category, Order, Product, ProductPage, UserOut
from storage import FileStorage
from token_manager import TokenManager

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        errors: Optional[List[str]] = None,
        field_errors: Optional[Dict[str, str]] = None,
        path: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.errors = errors or []
        self.field_errors = field_errors or {}
        self.path = path

    def __str__(self):
        if self.status:
            return f"{self.status}: {self.message}"
        return self.message


def get_error_message(error: Any) -> str:
    if isinstance(error, ApiError) and error.message:
        return error.message
    if isinstance(error, str):
        return error
    if isinstance(error, Exception) and str(error):
        return str(error)
    return "An unexpected error occurred"


def _drop_none(params: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in params.items() if v is not None}


class ApiClient:
    def __init__(
        self,
        base_url: str = API_BASE_URL,
        token_manager: Optional[TokenManager] = None,
        http: Optional[httpx.Client] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_http = http is None
        self.http = http or httpx.Client(timeout=timeout)
        self.tokens = token_manager or TokenManager(FileStorage(), base_url=self.base_url, http=self.http)

    def close(self) -> None:
        if self._owns_http:
            self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ---------- Transport ----------

    def _send(self, method: str, path: str, params: Optional[dict], json: Any) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        token = self.tokens.get_access_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        started = time.perf_counter()
        try:
            response = self.http.request(method, f"{self.base_url}{path}", params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Network error on %s %s: %s", method, path, e)
            raise ApiError("Network error occurred", path=path) from e

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug("%s %s -> %s in %.0fms", method, path, response.status_code, elapsed_ms)
        if token and response.is_success:
            self.tokens.update_session_timeout()
        return response

    def request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Any = None,
        retry_on_401: bool = True,
    ) -> Any:
        response = self._send(method, path, params, json)

        if response.status_code == 401 and retry_on_401 and self.tokens.get_refresh_token():
            if not self.tokens.refresh():
                raise ApiError("Session expired, please log in again", status=401, path=path)
            response = self._send(method, path, params, json)

        return self._unwrap(response, path)

    def _unwrap(self, response: httpx.Response, path: str) -> Any:
        try:
            body = response.json() if response.content else None
        except ValueError:
            body = response.text

        if response.is_success:
            if isinstance(body, dict) and "success" in body:
                return body.get("data")
            return body

        message = response.reason_phrase or "An error occurred"
        errors, field_errors = None, None
        if isinstance(body, dict):
            message = body.get("message") or body.get("detail") or message
            errors = body.get("errors")
            field_errors = body.get("fieldErrors")
        logger.error("API error %s on %s: %s", response.status_code, path, message)
        raise ApiError(str(message), status=response.status_code, errors=errors, field_errors=field_errors, path=path)

    def get(self, path: str, params: Optional[dict] = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Any = None, params: Optional[dict] = None) -> Any:
        return self.request("POST", path, params=params, json=json)

    def put(self, path: str, json: Any = None, params: Optional[dict] = None) -> Any:
        return self.request("PUT", path, params=params, json=json)

    def delete(self, path: str, params: Optional[dict] = None) -> Any:
        return self.request("DELETE", path, params=params)

    # ---------- Auth ----------

    def login(self, email: str, password: str, remember_me: bool = False) -> AuthResponse:
        data = self.request("POST", "/auth/login", json={"email": email, "password": password}, retry_on_401=False)
        self.tokens.set_tokens_from_response(data)
        self.tokens.set_remember_me(email, remember_me)
        return AuthResponse.model_validate(data)

    def register(
        self,
        email: str,
        username: str,
        password: str,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
    ) -> AuthResponse:
        payload = _drop_none({
            "email": email,
            "username": username,
            "password": password,
            "firstName": first_name,
            "lastName": last_name,
            "phone": phone,
        })
        data = self.request("POST", "/auth/register", json=payload, retry_on_401=False)
        self.tokens.set_tokens_from_response(data)
        return AuthResponse.model_validate(data)

    def refresh(self) -> bool:
        return self.tokens.refresh()

    def logout(self) -> None:
        """End the session on the server when possible; local tokens are always cleared."""
        refresh_token = self.tokens.get_refresh_token()
        try:
            if refresh_token:
                self.request("POST", "/auth/logout", json={"refreshToken": refresh_token}, retry_on_401=False)
        except ApiError as e:
            logger.warning("Server logout failed: %s", e)
        finally:
            self.tokens.clear_tokens()

    def logout_all_devices(self) -> None:
        try:
            self.post("/auth/logout-all")
        finally:
            self.tokens.clear_tokens()

    def get_current_user(self) -> UserOut:
        return UserOut.model_validate(self.get("/auth/me"))

    # ---------- Catalog ----------

    def get_products(
        self,
        page: Optional[int] = None,
        size: Optional[int] = None,
        category: Optional[str] = None,
        subcategory: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> ProductPage:
        params = _drop_none({
            "page": page,
            "size": size,
            "category": category,
            "subcategory": subcategory,
            "search": search,
            "minPrice": min_price,
            "maxPrice": max_price,
            "sortBy": sort_by,
            "sortOrder": sort_order,
        })
        return ProductPage.model_validate(self.get("/products", params=params) or {})

    def get_product(self, product_id: str) -> Product:
        return Product.model_validate(self.get(f"/products/{product_id}"))

    def get_categories(self) -> List[Category]:
        return [Category.model_validate(c) for c in self.get("/categories") or []]

    def get_recommendations(
        self,
        user_id: Optional[str] = None,
        product_id: Optional[str] = None,
        category_id: Optional[str] = None,
        limit: int = 8,
        kind: Optional[str] = None,
    ) -> Any:
        if user_id is None:
            user = self.tokens.get_user_data()
            user_id = user.id if user else None
        params = _drop_none({
            "userId": user_id,
            "productId": product_id,
            "categoryId": category_id,
            "limit": limit,
            "type": kind,
        })
        return self.get("/recommendations", params=params)

    def get_similar_products(self, product_id: str, limit: int = 8) -> Any:
        return self.get_recommendations(product_id=product_id, limit=limit, kind="similar")

    # ---------- Cart ----------

    def get_cart(self) -> Any:
        return self.get("/cart")

    def add_cart_item(self, product_id: str, quantity: int = 1) -> Any:
        return self.post("/cart/items", json={"productId": product_id, "quantity": quantity})

    def update_cart_item(self, product_id: str, quantity: int) -> Any:
        return self.put(f"/cart/items/{product_id}", params={"quantity": quantity})

    def remove_cart_item(self, product_id: str) -> Any:
        return self.delete(f"/cart/items/{product_id}")

    def clear_server_cart(self) -> Any:
        return self.delete("/cart")

    # ---------- Orders ----------

    def create_order(self, order: Union[Order, dict]) -> Any:
        if isinstance(order, Order):
            order = order.model_dump(by_alias=True, mode="json", exclude_none=True)
        return self.post("/orders", json=order)

    def get_order(self, order_id: str) -> Any:
        return self.get(f"/orders/{order_id}")

    def get_order_history(self) -> Any:
        return self.get("/orders/history")
