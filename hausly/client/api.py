import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Union[Optional[str], Awaitable[Optional[str]]]]


class ApiClientError(Exception):
    """Error envelope returned by the API, or a transport failure (status 0)"""

    def __init__(self, status: int, code: str, message: str):
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"ApiClientError({self.status}, {self.code!r}, {self.message!r})"


def normalize_id(doc: Optional[dict]) -> Optional[dict]:
    """Collapse `_id`/`id` into a single string `id` key"""
    if not doc:
        return doc
    doc = dict(doc)
    raw_id = doc.pop("_id", None)
    if doc.get("id") is None and raw_id is not None:
        doc["id"] = raw_id
    if doc.get("id") is not None:
        doc["id"] = str(doc["id"])
    return doc


def canonical_id(booking: Union[str, dict]) -> str:
    if isinstance(booking, dict):
        booking = normalize_id(booking).get("id")
    if not booking:
        raise ValueError("Booking has no id")
    return str(booking)


def _error_from_response(response: httpx.Response) -> ApiClientError:
    code = "HTTP_ERROR"
    message = f"Request failed with status {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            code = error.get("code", code)
            message = error.get("message", message)
        elif isinstance(error, str):
            message = error
        elif body.get("message"):
            message = body["message"]
        elif isinstance(body.get("detail"), str):
            message = body["detail"]
    return ApiClientError(response.status_code, code, message)


class HauslyClient:
    """
    Async client for the Hausly REST API.

    Args:
        base_url: Server root, e.g. "http://localhost:5001"
        token_provider: Callable returning the current Firebase ID token
            (sync or async). Called before every request so refreshed
            tokens are picked up.
        transport: Optional httpx transport, mainly for tests
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Optional[TokenProvider] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token_provider = token_provider
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/api", timeout=timeout, transport=transport
        )

    async def __aenter__(self) -> "HauslyClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _auth_headers(self) -> dict:
        if not self.token_provider:
            return {}
        token = self.token_provider()
        if inspect.isawaitable(token):
            token = await token
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def request(self, method: str, path: str, **kwargs) -> Any:
        headers = {**kwargs.pop("headers", {}), **(await self._auth_headers())}
        try:
            response = await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"❌ {method} {path} failed: {type(e).__name__}")
            raise ApiClientError(0, "NETWORK_ERROR", str(e)) from e

        if response.is_error:
            raise _error_from_response(response)
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"❌ {method} {path} returned a non-JSON body")
            raise ApiClientError(
                response.status_code, "INVALID_RESPONSE", "Server returned an invalid response"
            ) from e

    async def get_bookings(
        self,
        user_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[dict]:
        params = {
            k: v
            for k, v in {"userId": user_id, "providerId": provider_id, "status": status}.items()
            if v
        }
        return [normalize_id(b) for b in await self.request("GET", "/bookings", params=params)]

    async def get_booking(self, booking_id: str) -> dict:
        return normalize_id(await self.request("GET", f"/bookings/{booking_id}"))

    async def create_booking(
        self, service_id: str, date: str, time: str, address: str, notes: Optional[str] = None
    ) -> dict:
        payload = {"serviceId": service_id, "date": date, "time": time, "address": address}
        if notes:
            payload["notes"] = notes
        result = await self.request("POST", "/bookings", json=payload)
        result["booking"] = normalize_id(result.get("booking"))
        return result

    async def update_booking_status(self, booking_id: str, status: str) -> dict:
        result = await self.request(
            "PUT", f"/bookings/{booking_id}/status", json={"status": status}
        )
        return normalize_id(result.get("booking"))

    async def delete_booking(self, booking_id: str) -> dict:
        result = await self.request("DELETE", f"/bookings/{booking_id}")
        if result.get("booking"):
            result["booking"] = normalize_id(result["booking"])
        return result
