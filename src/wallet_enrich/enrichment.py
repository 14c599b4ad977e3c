"""
Text enrichment: structured fields from free text, and spending advice.

Both flows prefer the language model and fall back to heuristics, and both
always return a usable value.
"""

import calendar
import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from .models import (
    AdvisoryReport,
    EnrichedFields,
    Frequency,
    Subscription,
    frequency_label,
    parse_number,
)
from .prompts import load_prompts
from .providers import ProviderClient

logger = logging.getLogger(__name__)

SMART_PARSE_TEMPERATURE = 0.1
ANALYZE_TEMPERATURE = 0.3

DEFAULT_NAME = "Unknown Subscription"
DEFAULT_CURRENCY = "CNY"

CANNED_ADVICE = (
    "- Check for subscriptions with overlapping features to avoid paying twice.\n"
    "- Prefer annual plans or one-time purchases for tools you use long term.\n"
    "- Downgrade or pause subscriptions you rarely use."
)


@dataclass(frozen=True)
class KnownService:
    keyword: str
    name: str
    price: float
    currency: str


KNOWN_SERVICES = (
    KnownService("netflix", "Netflix", 15.99, "USD"),
    KnownService("spotify", "Spotify", 10.99, "USD"),
    KnownService("chatgpt", "ChatGPT Plus", 20.00, "USD"),
)


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping the day to the end of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def strip_code_fence(content: str) -> str:
    """Remove optional ```json / ``` fences around model output."""
    cleaned = content.strip()
    cleaned = cleaned.removeprefix("```json").removeprefix("```")
    cleaned = cleaned.removesuffix("```")
    return cleaned.strip()


def first_number(text: str) -> float | None:
    """First whitespace-delimited token that parses as a finite number."""
    for token in text.split():
        number = parse_number(token)
        if number is not None:
            return number
    return None


def format_price(price: float) -> str:
    """Render a price without a trailing .0 for whole amounts."""
    if float(price).is_integer():
        return str(int(price))
    return str(price)


def summarize_subscription(sub: Subscription) -> str:
    """One prompt line describing a subscription."""
    start = sub.start_date or "N/A"
    end = sub.next_payment or "N/A"
    return (
        f"- {sub.name} | {frequency_label(sub.frequency)} | "
        f"price={format_price(sub.price)} {sub.currency} | start={start} | end={end}"
    )


class TextEnricher:
    """Extraction and advisory flows over the language model provider."""

    def __init__(
        self,
        provider: ProviderClient,
        prompts_path: Path | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.provider = provider
        self.prompts_path = prompts_path
        self.today = today

    # -------------------------------------------------------------------------
    # Extraction
    # -------------------------------------------------------------------------

    async def extract(self, text: str) -> EnrichedFields:
        """Extract subscription fields from free text. Never raises."""
        logger.info(f"Smart parse request: {text}")

        if self.provider.has_llm:
            fields = await self._extract_with_llm(text)
            if fields is not None:
                return fields
            logger.info("Falling back to heuristic extraction")

        return self.heuristic_extract(text)

    async def _extract_with_llm(self, text: str) -> EnrichedFields | None:
        prompts = load_prompts(self.prompts_path)
        prompt = prompts.render_smart_parse(text, self.today().isoformat())

        try:
            content = await self.provider.chat(
                prompts.smart_parse_system, prompt, SMART_PARSE_TEMPERATURE
            )
        except Exception:
            logger.exception("Unexpected error calling the language model")
            return None
        if content is None:
            return None

        try:
            data = json.loads(strip_code_fence(content))
        except ValueError:
            logger.warning(f"Could not parse model output as JSON: {content[:200]!r}")
            return None
        if not isinstance(data, dict):
            logger.warning("Model output was not a JSON object")
            return None

        fields = EnrichedFields.from_dict(data)
        if parse_number(data.get("price")) is None:
            fields.price = first_number(text) or 0.0
        return fields

    def heuristic_extract(self, text: str) -> EnrichedFields:
        """Keyword and number heuristics used when no model answer is available."""
        today = self.today()
        fields = EnrichedFields(
            name=DEFAULT_NAME,
            price=0.0,
            currency=DEFAULT_CURRENCY,
            start_date=today.isoformat(),
            next_payment=add_months(today, 1).isoformat(),
            frequency=Frequency.MONTHLY.value,
        )

        lower_text = text.lower()
        for service in KNOWN_SERVICES:
            if service.keyword in lower_text:
                fields.name = service.name
                fields.price = service.price
                fields.currency = service.currency
                break

        price = first_number(text)
        if price is not None:
            fields.price = price

        return fields

    # -------------------------------------------------------------------------
    # Advice
    # -------------------------------------------------------------------------

    async def advise(self, subscriptions: Iterable[Subscription]) -> AdvisoryReport:
        """Produce spending advice for the active subscriptions. Never raises."""
        lines = [summarize_subscription(sub) for sub in subscriptions if sub.active]
        data_str = "".join(f"{line}\n" for line in lines)

        if self.provider.has_llm:
            body = await self._advise_with_llm(data_str)
            if body is not None:
                return AdvisoryReport(body=body, source="llm")
            logger.info("Falling back to canned advice")

        return AdvisoryReport(body=CANNED_ADVICE, source="canned")

    async def _advise_with_llm(self, data_str: str) -> str | None:
        prompts = load_prompts(self.prompts_path)
        prompt = prompts.render_analyze(data_str)

        try:
            content = await self.provider.chat(prompts.analyze_system, prompt, ANALYZE_TEMPERATURE)
        except Exception:
            logger.exception("Unexpected error calling the language model")
            return None

        if content is None or not content.strip():
            return None
        return content
