"""Tests for text extraction and spending advice."""

from datetime import date
from unittest.mock import AsyncMock

import pytest

from wallet_enrich.enrichment import (
    CANNED_ADVICE,
    TextEnricher,
    add_months,
    first_number,
    strip_code_fence,
    summarize_subscription,
)
from wallet_enrich.models import ADVICE_HEADING, Subscription
from wallet_enrich.providers import ProviderClient

TODAY = date(2024, 6, 1)


@pytest.fixture
def provider():
    """Provider double with no language model configured."""
    provider = AsyncMock(spec=ProviderClient)
    provider.has_llm = False
    provider.chat.return_value = None
    return provider


@pytest.fixture
def llm_provider(provider):
    provider.has_llm = True
    return provider


def make_enricher(provider, tmp_path=None):
    prompts_path = tmp_path / "prompts.json" if tmp_path else None
    return TextEnricher(provider, prompts_path=prompts_path, today=lambda: TODAY)


def netflix() -> Subscription:
    return Subscription(
        id=1,
        name="Netflix",
        price=15.99,
        currency="USD",
        next_payment="2024-07-01",
        frequency=1,
        start_date="2024-06-01",
    )


class TestHelpers:
    """Test extraction and summary helpers."""

    def test_add_months_clamps_day(self):
        """Should clamp the day to the end of the target month."""
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2024, 12, 15), 1) == date(2025, 1, 15)

    def test_strip_code_fence(self):
        """Should remove json and plain code fences."""
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fence('```\n{"a": 1}```') == '{"a": 1}'
        assert strip_code_fence('{"a": 1}') == '{"a": 1}'

    def test_first_number(self):
        """Should return the first finite numeric token."""
        assert first_number("Spotify 10.99 USD 2") == 10.99
        assert first_number("no numbers here") is None
        assert first_number("nan then 5") == 5.0

    def test_summarize_subscription(self):
        """Should render one prompt line per subscription."""
        assert summarize_subscription(netflix()) == (
            "- Netflix | Monthly | price=15.99 USD | start=2024-06-01 | end=2024-07-01"
        )

    def test_summarize_lifetime(self):
        """Should print N/A for missing dates and drop a trailing .0."""
        sub = Subscription(id=2, name="App", price=199.0, currency="CNY", frequency=0)
        assert summarize_subscription(sub) == (
            "- App | Lifetime | price=199 CNY | start=N/A | end=N/A"
        )


class TestHeuristicExtraction:
    """Test extraction without a language model."""

    async def test_known_service_with_price(self, provider):
        """Should recognize a known service and read the price."""
        fields = await make_enricher(provider).extract("Netflix 15.99 monthly")

        assert fields.name == "Netflix"
        assert fields.price == 15.99
        assert fields.currency == "USD"
        assert fields.frequency == 1

    async def test_known_service_default_price(self, provider):
        """Should use the known price when the text has none."""
        fields = await make_enricher(provider).extract("I pay for chatgpt")

        assert fields.name == "ChatGPT Plus"
        assert fields.price == 20.0

    async def test_number_overrides_known_price(self, provider):
        """Should prefer a number in the text over the known price."""
        fields = await make_enricher(provider).extract("spotify family 16.99")
        assert fields.name == "Spotify"
        assert fields.price == 16.99

    async def test_unknown_text_defaults(self, provider):
        """Should fill defaults for unrecognized text."""
        fields = await make_enricher(provider).extract("gym membership 30 per month")

        assert fields.name == "Unknown Subscription"
        assert fields.price == 30.0
        assert fields.currency == "CNY"
        assert fields.start_date == "2024-06-01"
        assert fields.next_payment == "2024-07-01"

    async def test_empty_text(self, provider):
        """Should still return fields for empty text."""
        fields = await make_enricher(provider).extract("")
        assert fields.price == 0.0
        assert fields.to_dict()["name"] == "Unknown Subscription"


class TestLLMExtraction:
    """Test extraction through the language model."""

    async def test_fenced_json(self, llm_provider, tmp_path):
        """Should parse fenced JSON and normalize its fields."""
        llm_provider.chat.return_value = (
            '```json\n{"name": "Netflix", "price": "15.99", "currency": "usd", '
            '"start_date": "2024-06-01", "end_date": "2025-06-01", "frequency": 12}\n```'
        )

        fields = await make_enricher(llm_provider, tmp_path).extract("Netflix yearly")

        assert fields.name == "Netflix"
        assert fields.price == 15.99
        assert fields.currency == "USD"
        assert fields.next_payment == "2025-06-01"
        assert fields.frequency == 12

        system, prompt, temperature = llm_provider.chat.call_args.args
        assert temperature == 0.1
        assert "Netflix yearly" in prompt
        assert "2024-06-01" in prompt

    async def test_missing_price_taken_from_text(self, llm_provider):
        """Should fill a missing price from the text."""
        llm_provider.chat.return_value = '{"name": "Gym", "price": null}'

        fields = await make_enricher(llm_provider).extract("Gym 30 monthly")

        assert fields.name == "Gym"
        assert fields.price == 30.0

    async def test_invalid_frequency_dropped(self, llm_provider):
        """Should leave out a frequency outside the allowed codes."""
        llm_provider.chat.return_value = '{"name": "Gym", "price": 30, "frequency": 7}'

        fields = await make_enricher(llm_provider).extract("Gym")

        assert fields.frequency is None
        assert "frequency" not in fields.to_dict()

    async def test_no_answer_falls_back(self, llm_provider):
        """Should use heuristics when the model returns nothing."""
        llm_provider.chat.return_value = None

        fields = await make_enricher(llm_provider).extract("Netflix 15.99")

        assert fields.name == "Netflix"
        assert fields.currency == "USD"

    async def test_unparseable_answer_falls_back(self, llm_provider):
        """Should use heuristics when the answer is not JSON."""
        llm_provider.chat.return_value = "Sorry, I can't help with that."

        fields = await make_enricher(llm_provider).extract("Spotify")

        assert fields.name == "Spotify"
        assert fields.price == 10.99

    async def test_provider_exception_falls_back(self, llm_provider):
        """Should use heuristics when the provider raises."""
        llm_provider.chat.side_effect = RuntimeError("boom")

        fields = await make_enricher(llm_provider).extract("Spotify")

        assert fields.name == "Spotify"


class TestAdvice:
    """Test spending advice."""

    async def test_canned_without_llm(self, provider):
        """Should return the canned advice verbatim without a model."""
        report = await make_enricher(provider).advise([netflix()])

        assert report.source == "canned"
        assert report.body == CANNED_ADVICE
        assert report.text == f"{ADVICE_HEADING}\n\n{CANNED_ADVICE}"
        provider.chat.assert_not_called()

    async def test_llm_advice(self, llm_provider):
        """Should send only active subscriptions to the model."""
        llm_provider.chat.return_value = "- Cancel the gym."
        inactive = Subscription(id=3, name="Old Gym", price=30.0, active=False)

        report = await make_enricher(llm_provider).advise([netflix(), inactive])

        assert report.source == "llm"
        assert report.to_dict() == {
            "analysis": f"{ADVICE_HEADING}\n\n- Cancel the gym.",
            "source": "llm",
        }
        system, prompt, temperature = llm_provider.chat.call_args.args
        assert temperature == 0.3
        assert "- Netflix | Monthly | price=15.99 USD" in prompt
        assert "Old Gym" not in prompt

    async def test_llm_failure_uses_canned(self, llm_provider):
        """Should use canned advice when the model answer is blank."""
        llm_provider.chat.return_value = "   "

        report = await make_enricher(llm_provider).advise([])

        assert report.source == "canned"
        assert report.body == CANNED_ADVICE
