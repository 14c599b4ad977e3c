"""
Data models and database operations for wallet-enrich.
"""

import logging
import math
import sqlite3
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .notifier import ChangeNotifier

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Errors
# -----------------------------------------------------------------------------


class EnrichmentError(Exception):
    """Base class for errors reported to callers of the enrichment layer."""


class InvalidInput(EnrichmentError):
    """Empty or unusable query, domain, or payload."""


class UpstreamUnavailable(EnrichmentError):
    """An external provider failed and no further fallback exists."""


class NotFoundError(EnrichmentError):
    """A stored row does not exist."""


# -----------------------------------------------------------------------------
# Enrichment results
# -----------------------------------------------------------------------------


class Frequency(IntEnum):
    """Billing frequency, stored as the number of months between payments."""

    DAILY = -1
    LIFETIME = 0
    MONTHLY = 1
    QUARTERLY = 3
    YEARLY = 12


FREQUENCY_LABELS = {
    Frequency.DAILY: "Daily",
    Frequency.LIFETIME: "Lifetime",
    Frequency.MONTHLY: "Monthly",
    Frequency.QUARTERLY: "Quarterly",
    Frequency.YEARLY: "Yearly",
}

VALID_FREQUENCIES = {f.value for f in Frequency}


def frequency_label(code: int) -> str:
    """Human-readable label for a frequency code."""
    try:
        return FREQUENCY_LABELS[Frequency(code)]
    except ValueError:
        return "Unknown"


def parse_number(value: Any) -> float | None:
    """Parse a finite number from an int, float, or numeric string."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


@dataclass(frozen=True)
class ResolutionOutcome:
    """Result of a resolution cascade: either found (with its source tier) or not."""

    found: bool
    value: str | None = None
    source: str | None = None  # "cache", "api", "html"

    @classmethod
    def hit(cls, value: str, source: str) -> "ResolutionOutcome":
        return cls(found=True, value=value, source=source)

    @classmethod
    def not_found(cls) -> "ResolutionOutcome":
        return cls(found=False)

    def to_dict(self) -> dict[str, Any]:
        if not self.found:
            return {"found": False}
        return {"found": True, "domain": self.value, "source": self.source}


@dataclass
class EnrichedFields:
    """
    Structured subscription fields extracted from free text.

    Any field other than price may be None when it could not be determined.
    """

    name: str | None = None
    price: float = 0.0
    currency: str | None = None
    start_date: str | None = None
    next_payment: str | None = None
    frequency: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, omitting absent fields."""
        result: dict[str, Any] = {"price": self.price}
        if self.name is not None:
            result["name"] = self.name
        if self.currency is not None:
            result["currency"] = self.currency
        if self.start_date is not None:
            result["start_date"] = self.start_date
        if self.next_payment is not None:
            result["next_payment"] = self.next_payment
        if self.frequency is not None:
            result["frequency"] = self.frequency
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EnrichedFields":
        """
        Create from a loosely-typed dictionary (e.g. language model output).

        Unknown keys are ignored; values of the wrong type are treated as absent.
        """
        fields = cls()

        name = data.get("name")
        if isinstance(name, str) and name.strip():
            fields.name = name.strip()

        price = parse_number(data.get("price"))
        if price is not None:
            fields.price = price

        currency = data.get("currency")
        if isinstance(currency, str) and currency.strip():
            fields.currency = currency.strip().upper()

        for key in ("start_date", "next_payment"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                setattr(fields, key, value.strip())

        # end_date is an accepted synonym for next_payment
        if fields.next_payment is None:
            end_date = data.get("end_date")
            if isinstance(end_date, str) and end_date.strip():
                fields.next_payment = end_date.strip()

        frequency = parse_number(data.get("frequency"))
        if frequency is not None and frequency.is_integer() and int(frequency) in VALID_FREQUENCIES:
            fields.frequency = int(frequency)

        return fields


ADVICE_HEADING = "### Subscription Optimization Suggestions"


@dataclass
class AdvisoryReport:
    """Spending advice derived from the active subscriptions."""

    body: str
    source: str  # "llm" or "canned"

    @property
    def text(self) -> str:
        return f"{ADVICE_HEADING}\n\n{self.body}"

    def to_dict(self) -> dict[str, Any]:
        return {"analysis": self.text, "source": self.source}


# -----------------------------------------------------------------------------
# Subscriptions
# -----------------------------------------------------------------------------


@dataclass
class Subscription:
    """A stored subscription row."""

    id: int
    name: str
    price: float
    currency: str = "CNY"
    next_payment: str | None = None
    frequency: int = Frequency.MONTHLY.value
    url: str | None = None
    logo: str | None = None
    start_date: str | None = None
    active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "currency": self.currency,
            "next_payment": self.next_payment,
            "frequency": self.frequency,
            "url": self.url,
            "logo": self.logo,
            "start_date": self.start_date,
            "active": self.active,
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Subscription":
        data = dict(row)
        data["active"] = bool(data.get("active", 1))
        return cls(**data)


@dataclass
class SubscriptionInput:
    """Payload for creating or updating a subscription."""

    name: str
    currency: str = "CNY"
    frequency: int = Frequency.MONTHLY.value
    price: float | None = None
    next_payment: str | None = None
    url: str | None = None
    logo: str | None = None
    start_date: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SubscriptionInput":
        """Create from a JSON request body."""
        if not isinstance(data, dict):
            raise InvalidInput("Request body must be a JSON object")

        frequency = data.get("frequency", Frequency.MONTHLY.value)
        if isinstance(frequency, bool) or not isinstance(frequency, int):
            raise InvalidInput("Invalid frequency")

        price = data.get("price")
        if price is not None:
            price = parse_number(price)
            if price is None:
                raise InvalidInput("Invalid price")

        return cls(
            name=str(data.get("name") or ""),
            currency=data.get("currency") or "CNY",
            frequency=frequency,
            price=price,
            next_payment=data.get("next_payment") or None,
            url=data.get("url") or None,
            logo=data.get("logo") or None,
            start_date=data.get("start_date") or None,
        )

    def validate(self) -> tuple[float, str | None]:
        """
        Check the payload and return the (price, next_payment) to store.

        Lifetime subscriptions have an optional price and no next payment date;
        every other frequency requires both.
        """
        if not self.name.strip():
            raise InvalidInput("Name is required")
        if self.frequency not in VALID_FREQUENCIES:
            raise InvalidInput("Invalid frequency")

        if self.frequency == Frequency.LIFETIME:
            return (self.price if self.price is not None else 0.0), None

        if self.price is None:
            raise InvalidInput("Price is required for non-lifetime subscriptions")
        if self.next_payment is None:
            raise InvalidInput("Next payment date is required for non-lifetime subscriptions")
        return self.price, self.next_payment


class SubscriptionDatabase:
    """
    Database operations for subscriptions.

    Every successful mutation is followed by a change notification when a
    notifier is attached.
    """

    def __init__(self, db_path: Path, notifier: "ChangeNotifier | None" = None):
        self.db_path = db_path
        self.notifier = notifier

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _changed(self) -> None:
        if self.notifier is not None:
            self.notifier.publish()

    def list_all(self) -> list[Subscription]:
        """Get all subscriptions ordered by next payment date."""
        conn = self._connect()
        try:
            cursor = conn.execute("SELECT * FROM subscriptions ORDER BY next_payment ASC")
            return [Subscription.from_row(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def list_active(self) -> list[Subscription]:
        """Get active subscriptions only."""
        return [sub for sub in self.list_all() if sub.active]

    def get(self, subscription_id: int) -> Subscription | None:
        """Get a single subscription by ID."""
        conn = self._connect()
        try:
            cursor = conn.execute(
                "SELECT * FROM subscriptions WHERE id = ?",
                (subscription_id,),
            )
            row = cursor.fetchone()
            return Subscription.from_row(row) if row else None
        finally:
            conn.close()

    def exists(self, subscription_id: int) -> bool:
        return self.get(subscription_id) is not None

    def insert(self, payload: SubscriptionInput) -> Subscription:
        """Validate and insert a new subscription."""
        price, next_payment = payload.validate()

        conn = self._connect()
        try:
            cursor = conn.execute(
                """
                INSERT INTO subscriptions
                    (name, price, currency, next_payment, frequency, url, logo, start_date)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    payload.name,
                    price,
                    payload.currency,
                    next_payment,
                    payload.frequency,
                    payload.url,
                    payload.logo,
                    payload.start_date,
                ),
            )
            conn.commit()
            subscription_id = cursor.lastrowid
        finally:
            conn.close()

        logger.info(f"Created subscription {subscription_id}: {payload.name}")
        self._changed()

        return Subscription(
            id=subscription_id,
            name=payload.name,
            price=price,
            currency=payload.currency,
            next_payment=next_payment,
            frequency=payload.frequency,
            url=payload.url,
            logo=payload.logo,
            start_date=payload.start_date,
            active=True,
        )

    def update(self, subscription_id: int, payload: SubscriptionInput) -> Subscription:
        """Validate and update an existing subscription."""
        price, next_payment = payload.validate()

        conn = self._connect()
        try:
            cursor = conn.execute(
                """
                UPDATE subscriptions
                SET name = ?, price = ?, currency = ?, next_payment = ?, frequency = ?,
                    url = ?, logo = ?, start_date = ?
                WHERE id = ?
                """,
                (
                    payload.name,
                    price,
                    payload.currency,
                    next_payment,
                    payload.frequency,
                    payload.url,
                    payload.logo,
                    payload.start_date,
                    subscription_id,
                ),
            )
            conn.commit()
            updated = cursor.rowcount
        finally:
            conn.close()

        if updated == 0:
            raise NotFoundError("Subscription not found")

        logger.info(f"Updated subscription {subscription_id}")
        self._changed()

        stored = self.get(subscription_id)
        if stored is None:
            raise NotFoundError("Subscription not found")
        return stored

    def delete(self, subscription_id: int) -> None:
        """Delete a subscription. Unknown IDs are not an error."""
        conn = self._connect()
        try:
            conn.execute("DELETE FROM subscriptions WHERE id = ?", (subscription_id,))
            conn.commit()
        finally:
            conn.close()

        logger.info(f"Deleted subscription {subscription_id}")
        self._changed()
