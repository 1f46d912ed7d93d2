# Overview: Outbound client for the Mercado Pago REST API (checkout preferences and payments).

"""
Payment Gateway Client

WHY: The gateway is the only source of truth for payment status and amounts.
Everything that reacts to a payment re-reads it through this client instead of
trusting whatever arrived in a notification.

DESIGN:
- Thin wrapper over httpx with explicit timeouts (no indefinite hangs)
- Forward-compatible parsing: unknown fields are ignored, optional fields
  (fees, net amounts, payer, items) are extracted defensively
- No mutable state beyond the bearer credential loaded from configuration
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

import httpx
from flask import current_app

from ..time_utils import epoch_millis, to_gateway_timestamp


class GatewayError(Exception):
    """Raised when the gateway answers with an unexpected non-2xx response."""

    def __init__(self, message: str, status_code: int | None = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class GatewayUnavailable(GatewayError):
    """Raised when credentials are missing or the gateway cannot be reached."""


class PaymentNotFound(GatewayError):
    """Raised when the gateway reports 404 for a payment id."""


class InvalidItems(ValueError):
    """Raised when checkout items are missing id/name/price/quantity."""

    def __init__(self, message: str, item: Any = None):
        super().__init__(message)
        self.item = item


# =============================================================================
# PAYMENT STATUS (CONSTANTS)
# =============================================================================

PAYMENT_STATUS_APPROVED = "approved"
PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_IN_PROCESS = "in_process"
PAYMENT_STATUS_REJECTED = "rejected"


# =============================================================================
# PARSED GATEWAY OBJECTS
# =============================================================================

def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _to_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        return None


def _to_whole_number(value: Any) -> int | None:
    """Integer value of a whole number (2, 2.0, "2"); None for 2.5, "abc" or booleans."""
    number = _to_decimal(value)
    if number is None or not number.is_finite() or number != number.to_integral_value():
        return None
    return int(number)


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class GatewayLineItem:
    """A line item as the gateway reports it; every field may be missing."""
    id: str | None
    title: str | None
    quantity: int | None
    unit_price: Decimal | None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GatewayLineItem":
        raw_id = payload.get("id")
        return cls(
            id=str(raw_id) if raw_id not in (None, "") else None,
            title=payload.get("title") or None,
            quantity=_to_int(payload.get("quantity")),
            unit_price=_to_decimal(payload.get("unit_price")),
        )


@dataclass(frozen=True)
class GatewayPayment:
    """Read-only view of a gateway payment."""
    payment_id: str
    status: str
    status_detail: str | None
    transaction_amount: Decimal
    external_reference: str | None
    payer_email: str | None
    items: tuple[GatewayLineItem, ...]
    fee_amount: Decimal | None = None
    net_received_amount: Decimal | None = None
    total_paid_amount: Decimal | None = None
    currency: str | None = None
    date_approved: str | None = None
    metadata: dict = field(default_factory=dict)
    raw: dict = field(default_factory=dict, repr=False, compare=False)

    @property
    def is_approved(self) -> bool:
        return self.status == PAYMENT_STATUS_APPROVED

    def summary(self) -> dict:
        return {
            "id": self.payment_id,
            "status": self.status,
            "statusDetail": self.status_detail,
            "amount": float(self.transaction_amount),
            "email": self.payer_email,
            "externalReference": self.external_reference,
            "itemCount": len(self.items),
        }

    def fee_info(self) -> dict:
        return {
            "transactionAmount": float(self.transaction_amount),
            "feeAmount": float(self.fee_amount) if self.fee_amount is not None else None,
            "netReceivedAmount": (
                float(self.net_received_amount) if self.net_received_amount is not None else None
            ),
            "totalPaidAmount": (
                float(self.total_paid_amount) if self.total_paid_amount is not None else None
            ),
            "feeDetails": self.raw.get("fee_details"),
            "transactionDetails": self.raw.get("transaction_details"),
        }


def parse_payment(payload: Mapping[str, Any]) -> GatewayPayment:
    """
    Build a GatewayPayment from the gateway's JSON.

    Fee fields are optional on the gateway side: fee is the sum of
    fee_details[].amount and both fee and net amount stay None when absent.
    """
    additional_info = _as_dict(payload.get("additional_info"))
    raw_items = additional_info.get("items") or []
    items = tuple(
        GatewayLineItem.from_payload(item) for item in raw_items if isinstance(item, dict)
    )

    fee_details = payload.get("fee_details")
    fee_amount = None
    if isinstance(fee_details, list) and fee_details:
        amounts = [_to_decimal(_as_dict(fee).get("amount")) for fee in fee_details]
        amounts = [a for a in amounts if a is not None]
        if amounts:
            fee_amount = sum(amounts, Decimal("0"))

    transaction_details = _as_dict(payload.get("transaction_details"))
    payer = _as_dict(payload.get("payer"))

    return GatewayPayment(
        payment_id=str(payload.get("id")),
        status=str(payload.get("status") or "unknown"),
        status_detail=payload.get("status_detail"),
        transaction_amount=_to_decimal(payload.get("transaction_amount")) or Decimal("0"),
        external_reference=payload.get("external_reference") or None,
        payer_email=payer.get("email") or None,
        items=items,
        fee_amount=fee_amount,
        net_received_amount=_to_decimal(transaction_details.get("net_received_amount")),
        total_paid_amount=_to_decimal(transaction_details.get("total_paid_amount")),
        currency=payload.get("currency_id"),
        date_approved=payload.get("date_approved"),
        metadata=_as_dict(payload.get("metadata")),
        raw=dict(payload),
    )


@dataclass(frozen=True)
class CheckoutPreference:
    preference_id: str
    redirect_url: str | None
    sandbox_redirect_url: str | None
    external_reference: str

    def to_dict(self) -> dict:
        return {
            "preferenceId": self.preference_id,
            "initPoint": self.redirect_url,
            "sandboxInitPoint": self.sandbox_redirect_url,
            "externalReference": self.external_reference,
        }


# =============================================================================
# CLIENT
# =============================================================================

@dataclass(frozen=True)
class GatewaySettings:
    access_token: str | None
    api_base: str = "https://api.mercadopago.com"
    timeout_seconds: float = 5.0
    public_base_url: str = "http://localhost:3002"
    currency: str = "CLP"
    statement_descriptor: str | None = None
    integrator_id: str | None = None
    max_installments: int = 6
    excluded_payment_types: tuple[str, ...] = ("ticket", "atm")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "GatewaySettings":
        return cls(
            access_token=config.get("MERCADOPAGO_ACCESS_TOKEN"),
            api_base=config.get("MERCADOPAGO_API_BASE", cls.api_base),
            timeout_seconds=float(config.get("GATEWAY_TIMEOUT_SECONDS", cls.timeout_seconds)),
            public_base_url=config.get("PUBLIC_BASE_URL", cls.public_base_url),
            currency=config.get("STORE_CURRENCY", cls.currency),
            statement_descriptor=config.get("STATEMENT_DESCRIPTOR"),
            integrator_id=config.get("MERCADOPAGO_INTEGRATOR_ID"),
            max_installments=int(config.get("MAX_INSTALLMENTS", cls.max_installments)),
            excluded_payment_types=tuple(config.get("EXCLUDED_PAYMENT_TYPES") or ()),
        )


REQUIRED_ITEM_FIELDS = ("id", "name", "price", "quantity")


def validate_checkout_items(items: Iterable[Mapping[str, Any]]) -> list[dict]:
    """
    Reject carts with missing or non-positive id/name/price/quantity.

    Quantities must be whole numbers. Returned items are copies carrying the
    parsed integer quantity.
    """
    items = list(items or [])
    if not items:
        raise InvalidItems("Items are required")
    validated = []
    for item in items:
        if not isinstance(item, Mapping):
            raise InvalidItems("Invalid item data", item=item)
        for key in REQUIRED_ITEM_FIELDS:
            if not item.get(key):
                raise InvalidItems(f"Invalid item data: missing {key}", item=dict(item))
        price = _to_decimal(item.get("price"))
        if price is None or not price.is_finite() or price <= 0:
            raise InvalidItems("Invalid item data: price must be positive", item=dict(item))
        quantity = _to_whole_number(item.get("quantity"))
        if quantity is None or quantity <= 0:
            raise InvalidItems("Invalid item data: quantity must be a positive whole number", item=dict(item))
        validated.append({**item, "quantity": quantity})
    return validated


class MercadoPagoClient:
    """
    Mercado Pago REST client.

    Endpoints used:
    - POST /checkout/preferences        (hosted checkout intent)
    - GET  /v1/payments/{id}            (authoritative payment state)
    - GET  /v1/payments/search          (reconciliation sweep)
    """

    def __init__(self, settings: GatewaySettings, transport: httpx.BaseTransport | None = None):
        if not settings.access_token:
            raise GatewayUnavailable("Mercado Pago is not configured. Check MERCADOPAGO_ACCESS_TOKEN")
        self.settings = settings
        self._http = httpx.Client(
            base_url=settings.api_base,
            timeout=httpx.Timeout(settings.timeout_seconds),
            headers={
                "Authorization": f"Bearer {settings.access_token}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------

    def build_preference_body(
        self,
        items: list[Mapping[str, Any]],
        shipping: Mapping[str, Any] | None = None,
        customer_email: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        external_reference: str | None = None,
    ) -> dict:
        base_url = self.settings.public_base_url.rstrip("/")
        whole_units = self.settings.currency == "CLP"

        mp_items = []
        line_items = []
        for item in items:
            version = item.get("version") or "normal"
            image = item.get("image") or ""
            price = _to_decimal(item["price"])
            mp_item = {
                "id": str(item["id"]),
                "title": f"{item['name']} ({'Foil' if version == 'foil' else 'Normal'})",
                "description": f"Carta Lorcana: {item['name']}",
                "category_id": "trading_cards",
                "quantity": _to_int(item["quantity"]),
                # CLP prices must be whole numbers
                "unit_price": int(price.to_integral_value()) if whole_units else float(price),
                "currency_id": self.settings.currency,
            }
            if image:
                mp_item["picture_url"] = image if image.startswith("http") else f"{base_url}{image}"
            mp_items.append(mp_item)
            line_items.append({"id": str(item["id"]), "version": version})

        body: dict[str, Any] = {
            "items": mp_items,
            "payment_methods": {
                "excluded_payment_types": [{"id": t} for t in self.settings.excluded_payment_types],
                "installments": self.settings.max_installments,
            },
            "back_urls": {
                "success": f"{base_url}/payment/success",
                "failure": f"{base_url}/payment/failure",
                "pending": f"{base_url}/payment/pending",
            },
            "auto_return": "approved",
            "external_reference": external_reference or f"order-{epoch_millis()}",
            "notification_url": f"{base_url}/api/webhooks/mercadopago",
            # Structured variant tags, echoed back on the payment object
            "metadata": {**dict(metadata or {}), "line_items": line_items},
        }
        if customer_email:
            body["payer"] = {"email": customer_email}
        if self.settings.statement_descriptor:
            body["statement_descriptor"] = self.settings.statement_descriptor
        if self.settings.integrator_id:
            body["integrator_id"] = self.settings.integrator_id

        if shipping:
            cost = _to_decimal(shipping.get("cost"))
            shipments: dict[str, Any] = {"mode": "not_specified"}
            if cost is not None and cost > 0:
                shipments["cost"] = int(cost.to_integral_value()) if whole_units else float(cost)
            address = shipping.get("address")
            if isinstance(address, Mapping):
                shipments["receiver_address"] = {
                    "street_name": address.get("street"),
                    "city_name": address.get("city"),
                    "state_name": address.get("region"),
                    "zip_code": address.get("zipCode"),
                }
            body["shipments"] = shipments
        return body

    def create_checkout_preference(
        self,
        items: Iterable[Mapping[str, Any]],
        shipping: Mapping[str, Any] | None = None,
        customer_email: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> CheckoutPreference:
        """
        Create a hosted-checkout preference.

        Raises:
            InvalidItems: if any item lacks id/name/price/quantity
            GatewayUnavailable: if the create call fails for any reason
        """
        items = validate_checkout_items(items)
        body = self.build_preference_body(items, shipping, customer_email, metadata)

        try:
            response = self._http.post(
                "/checkout/preferences",
                json=body,
                headers={"X-Idempotency-Key": body["external_reference"]},
            )
        except httpx.HTTPError as exc:
            raise GatewayUnavailable(f"Could not reach Mercado Pago: {exc}") from exc

        if response.status_code >= 300:
            raise GatewayUnavailable(
                f"Mercado Pago rejected preference ({response.status_code})",
                status_code=response.status_code,
                payload=_safe_json(response),
            )

        data = _safe_json(response)
        if not isinstance(data, dict) or not data.get("id"):
            raise GatewayUnavailable("Mercado Pago returned a preference without id", payload=data)

        return CheckoutPreference(
            preference_id=str(data["id"]),
            redirect_url=data.get("init_point"),
            sandbox_redirect_url=data.get("sandbox_init_point"),
            external_reference=body["external_reference"],
        )

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    def fetch_payment(self, payment_id: str) -> GatewayPayment:
        """
        Fetch the authoritative state of a payment.

        Raises:
            PaymentNotFound: gateway returned 404
            GatewayError: any other non-2xx
            GatewayUnavailable: timeout or transport failure
        """
        response = self._get(f"/v1/payments/{payment_id}")
        if response.status_code == 404:
            raise PaymentNotFound(f"Payment {payment_id} not found", status_code=404)
        if response.status_code >= 300:
            raise GatewayError(
                f"Mercado Pago returned {response.status_code} for payment {payment_id}",
                status_code=response.status_code,
                payload=_safe_json(response),
            )
        data = _safe_json(response)
        if not isinstance(data, dict):
            raise GatewayError(f"Malformed payment payload for {payment_id}", payload=data)
        return parse_payment(data)

    def search_payments(
        self,
        status: str = PAYMENT_STATUS_APPROVED,
        begin_date=None,
        end_date=None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[GatewayPayment], int]:
        """Search payments by status and creation window. Returns (page, total)."""
        params: dict[str, Any] = {
            "status": status,
            "sort": "date_created",
            "criteria": "desc",
            "limit": limit,
            "offset": offset,
        }
        if begin_date is not None or end_date is not None:
            params["range"] = "date_created"
            if begin_date is not None:
                params["begin_date"] = to_gateway_timestamp(begin_date)
            if end_date is not None:
                params["end_date"] = to_gateway_timestamp(end_date)

        response = self._get("/v1/payments/search", params=params)
        if response.status_code >= 300:
            raise GatewayError(
                f"Mercado Pago search failed ({response.status_code})",
                status_code=response.status_code,
                payload=_safe_json(response),
            )
        data = _as_dict(_safe_json(response))
        results = [parse_payment(p) for p in data.get("results") or [] if isinstance(p, dict)]
        total = _to_int(_as_dict(data.get("paging")).get("total"))
        return results, total if total is not None else len(results)

    def _get(self, path: str, **kwargs) -> httpx.Response:
        try:
            return self._http.get(path, **kwargs)
        except httpx.TimeoutException as exc:
            raise GatewayUnavailable(f"Mercado Pago timed out on {path}") from exc
        except httpx.HTTPError as exc:
            raise GatewayUnavailable(f"Could not reach Mercado Pago: {exc}") from exc


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def get_gateway_client():
    """
    Return the application's gateway client, building it on first use.

    Tests and alternative deployments install their own object under
    app.extensions["gateway_client"].
    """
    client = current_app.extensions.get("gateway_client")
    if client is None:
        client = MercadoPagoClient(GatewaySettings.from_config(current_app.config))
        current_app.extensions["gateway_client"] = client
    return client
