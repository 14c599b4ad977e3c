"""
Prompt templates for the language model flows.

Templates are read from a JSON file on every call so edits take effect
without a restart. A missing or malformed file falls back to the compiled-in
defaults, key by key.
"""

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Prompts:
    """System prompts and user templates for extraction and advice."""

    smart_parse_system: str
    smart_parse_user_template: str  # placeholders: {text}, {today}
    analyze_system: str
    analyze_user_template: str  # placeholder: {list}

    def render_smart_parse(self, text: str, today: str) -> str:
        return self.smart_parse_user_template.replace("{text}", text).replace("{today}", today)

    def render_analyze(self, subscription_list: str) -> str:
        return self.analyze_user_template.replace("{list}", subscription_list)


DEFAULT_PROMPTS = Prompts(
    smart_parse_system="You are a helpful assistant that extracts JSON.",
    smart_parse_user_template=(
        "You are a subscription data extractor. Extract details from this text: '{text}'. "
        "Return ONLY a valid JSON object with these fields: name (string), price (number), "
        "currency (string, e.g. CNY, USD), start_date (string YYYY-MM-DD, assume today is "
        "{today} if 'today'), next_payment (string YYYY-MM-DD, synonymous with end_date), "
        "frequency (number: -1=daily, 1=monthly, 3=quarterly, 12=yearly, 0=lifetime). "
        "If missing, guess or leave null."
    ),
    analyze_system="You are a financial advisor.",
    analyze_user_template=(
        "As a subscription optimization advisor, give 3-5 recommendations as a Markdown "
        "list, based only on the subscriptions below. Do not calculate or estimate any "
        "amounts. Focus on redundant subscriptions, upgrade/downgrade opportunities, "
        "cancellation guidance, and reminders for upcoming renewals.\n\n"
        "Subscriptions:\n{list}"
    ),
)

PROMPT_KEYS = tuple(f.name for f in fields(Prompts))


def load_prompts(path: Path | None) -> Prompts:
    """Load prompts from a JSON file, falling back to the defaults."""
    if path is None:
        return DEFAULT_PROMPTS

    try:
        raw = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug(f"No prompts file at {path}, using defaults")
        return DEFAULT_PROMPTS
    except OSError as e:
        logger.warning(f"Could not read prompts file {path}: {e}")
        return DEFAULT_PROMPTS

    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.warning(f"Malformed prompts file {path}: {e}")
        return DEFAULT_PROMPTS

    if not isinstance(data, dict):
        logger.warning(f"Prompts file {path} is not a JSON object")
        return DEFAULT_PROMPTS

    overrides = {
        key: data[key] for key in PROMPT_KEYS if isinstance(data.get(key), str) and data[key]
    }
    logger.debug(f"Prompts loaded from {path}: {sorted(overrides)}")
    return replace(DEFAULT_PROMPTS, **overrides)
