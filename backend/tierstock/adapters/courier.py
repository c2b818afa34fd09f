# Overview: NinjaVan-compatible courier client; books, cancels and prints shipments over httpx.

"""
Courier integration.

- OAuth client-credentials token, cached until five minutes before expiry
- create_shipment: POST /{country}/4.1/orders
- cancel_shipment: DELETE /{country}/2.2/orders/{tracking}; an order the
  courier reports as already cancelled counts as cancelled
- get_waybill: GET /{country}/2.0/reports/waybill, returns the PDF bytes

Every transport error, timeout or non-success response becomes
ExternalServiceUnavailable, and so does a success response whose body cannot be
read. The requested tracking number is derived from the order id, so
re-booking the same order after a timeout cannot create a second parcel; a
"duplicate tracking number" refusal on such a retry counts as booked.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import timedelta

import httpx

from ..errors import ExternalServiceUnavailable
from ..models import PaymentMethod
from ..time_utils import utcnow
from .base import ShipmentBooking

logger = logging.getLogger(__name__)

TOKEN_EXPIRY_MARGIN_SECONDS = 300
ADDRESS_LINE_LIMIT = 100
ALREADY_CANCELLED = "ORDER_ALREADY_CANCELLED"
DUPLICATE_MARKERS = ("duplicate", "already exist")


def _is_duplicate_tracking(status_code: int, details: dict, requested: str) -> bool:
    """True when the courier refused a booking because the requested tracking number is taken."""
    if status_code not in (400, 409):
        return False
    text = json.dumps(details, default=str).lower()
    if not any(marker in text for marker in DUPLICATE_MARKERS):
        return False
    return requested.lower() in text or "tracking" in text


def _split_address(address: str) -> tuple[str, str]:
    address = address or ""
    return address[:ADDRESS_LINE_LIMIT], address[ADDRESS_LINE_LIMIT:2 * ADDRESS_LINE_LIMIT]


def requested_tracking_number(order) -> str:
    # Courier limit is 9 characters
    return f"TS{order.id:07d}"


class NinjaVanCourier:
    def __init__(
        self,
        *,
        base_url: str,
        country: str,
        client_id: str,
        client_secret: str,
        sender: dict | None = None,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.country = country
        self.client_id = client_id
        self.client_secret = client_secret
        self.sender = sender or {}
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)
        self._token: str | None = None
        self._token_expires_at = 0.0

    @classmethod
    def from_config(cls, config, **kwargs) -> "NinjaVanCourier":
        return cls(
            base_url=config["COURIER_BASE_URL"],
            country=config["COURIER_COUNTRY"],
            client_id=config["COURIER_CLIENT_ID"],
            client_secret=config["COURIER_CLIENT_SECRET"],
            sender=config.get("COURIER_SENDER"),
            timeout=config["COURIER_TIMEOUT_SECONDS"],
            **kwargs,
        )

    def close(self) -> None:
        self._client.close()

    # --- transport ---------------------------------------------------------

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("Courier %s %s timed out", method, path)
            raise ExternalServiceUnavailable(
                "Courier request timed out; result unknown", details={"path": path}
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Courier %s %s failed: %s", method, path, exc)
            raise ExternalServiceUnavailable(
                f"Courier request failed: {exc}", details={"path": path}
            ) from exc

    def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        response = self._send(
            "POST",
            f"/{self.country}/2.0/oauth/access_token",
            json={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "client_credentials",
            },
        )
        if response.status_code != 200:
            logger.error("Courier authentication failed: %s %s", response.status_code, response.text)
            raise ExternalServiceUnavailable(
                "Courier authentication failed", details={"status": response.status_code}
            )

        try:
            data = response.json()
            expires_in = int(data.get("expires_in") or 3600)
            token = data["access_token"]
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            logger.error("Courier returned an unreadable token response: %s", response.text[:200])
            raise ExternalServiceUnavailable("Courier returned an unreadable token response") from exc
        self._token = token
        self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN_SECONDS, 0)
        return self._token

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._access_token()}"}
        response = self._send(method, path, headers=headers, **kwargs)
        if response.status_code == 401:
            # Token revoked early; fetch a fresh one once
            self._token = None
            headers = {"Authorization": f"Bearer {self._access_token()}"}
            response = self._send(method, path, headers=headers, **kwargs)
        return response

    @staticmethod
    def _error_payload(response: httpx.Response) -> dict:
        try:
            payload = response.json()
        except ValueError:
            return {"raw": response.text}
        return payload if isinstance(payload, dict) else {"raw": payload}

    # --- operations --------------------------------------------------------

    def _shipment_payload(self, order) -> dict:
        customer = order.customer
        today = utcnow().date()
        tracking = requested_tracking_number(order)
        address1, address2 = _split_address(customer.address or "")
        total = round(order.total_price_cents / 100, 2)
        product_name = order.product.name if order.product is not None else (order.source_product_name or "Parcel")
        sender = self.sender

        return {
            "service_type": "Parcel",
            "service_level": "Standard",
            "requested_tracking_number": tracking,
            "reference": {"merchant_order_number": order.order_number},
            "from": {
                "name": sender.get("name", ""),
                "phone_number": sender.get("phone_number", ""),
                "email": sender.get("email", ""),
                "address": {
                    "address1": sender.get("address1", ""),
                    "address2": sender.get("address2", ""),
                    "country": self.country.upper(),
                    "postcode": sender.get("postcode", ""),
                    "city": sender.get("city", ""),
                    "state": sender.get("state", ""),
                },
            },
            "to": {
                "name": customer.name,
                "phone_number": customer.phone,
                "address": {
                    "address1": address1,
                    "address2": address2,
                    "country": self.country.upper(),
                    "postcode": customer.postcode or "",
                    "city": customer.city or "",
                    "state": customer.state or "",
                },
            },
            "parcel_job": {
                "is_pickup_required": True,
                "pickup_service_type": "Scheduled",
                "pickup_service_level": "Standard",
                "pickup_date": today.isoformat(),
                "pickup_timeslot": {"start_time": "09:00", "end_time": "18:00", "timezone": "Asia/Kuala_Lumpur"},
                "delivery_start_date": (today + timedelta(days=2)).isoformat(),
                "delivery_timeslot": {"start_time": "09:00", "end_time": "18:00", "timezone": "Asia/Kuala_Lumpur"},
                "delivery_instructions": f"{product_name} x{order.quantity} ({today.isoformat()})",
                "cash_on_delivery": total if order.payment_method is PaymentMethod.COD else 0,
                "insured_value": total,
                "dimensions": {"weight": 0.5},
            },
        }

    def create_shipment(self, order) -> ShipmentBooking:
        payload = self._shipment_payload(order)
        response = self._request("POST", f"/{self.country}/4.1/orders", json=payload)
        requested = payload["requested_tracking_number"]
        if not response.is_success:
            details = self._error_payload(response)
            if _is_duplicate_tracking(response.status_code, details, requested):
                # An earlier attempt whose response was lost already created this parcel
                logger.info("Courier already holds order %s as %s", order.order_number, requested)
                return ShipmentBooking(tracking_number=requested, courier_order_id=order.order_number)
            logger.warning("Courier rejected order %s: %s", order.order_number, details)
            raise ExternalServiceUnavailable(
                "Courier rejected the shipment", details={"status": response.status_code, "response": details}
            )

        try:
            data = response.json()
        except ValueError as exc:
            logger.error("Courier booked order %s but the response was unreadable", order.order_number)
            raise ExternalServiceUnavailable(
                "Courier response was unreadable; result unknown", details={"status": response.status_code}
            ) from exc
        tracking = (data.get("tracking_number") if isinstance(data, dict) else None) or requested
        logger.info("Courier booked order %s tracking=%s", order.order_number, tracking)
        return ShipmentBooking(tracking_number=tracking, courier_order_id=order.order_number)

    def cancel_shipment(self, tracking_number: str) -> None:
        response = self._request("DELETE", f"/{self.country}/2.2/orders/{tracking_number}")
        if response.is_success:
            return

        details = self._error_payload(response)
        data = details.get("data")
        message = data.get("message") if isinstance(data, dict) else None
        if details.get("description") == ALREADY_CANCELLED or message == "Order is already cancelled":
            logger.info("Courier order %s was already cancelled", tracking_number)
            return

        logger.warning("Courier cancel failed for %s: %s", tracking_number, details)
        raise ExternalServiceUnavailable(
            "Courier could not cancel the shipment",
            details={"status": response.status_code, "tracking_number": tracking_number, "response": details},
        )

    def get_waybill(self, tracking_numbers: list[str]) -> bytes:
        response = self._request(
            "GET",
            f"/{self.country}/2.0/reports/waybill",
            params={"tids": ",".join(tracking_numbers), "h": 0},
        )
        if not response.is_success:
            raise ExternalServiceUnavailable(
                "Courier could not generate the waybill", details={"status": response.status_code}
            )
        return response.content
