"""
Newsletter handlers.

build_handlers() is the registry: it returns the ordered, immutable tuple of
handler instances injected into the email processor at startup.
"""

import logging
from typing import Iterable, Tuple

from newsletters.android_weekly import AndroidWeeklyNewsletterHandler
from newsletters.base import MultipleFeedsHandler, NewsletterHandler, SingleFeedHandler
from newsletters.kotlin_weekly import KotlinWeeklyNewsletterHandler
from newsletters.mit_weekend_reads import MITWeekendReadsNewsletterHandler
from newsletters.pointer import PointerNewsletterHandler
from newsletters.tech_readers import TechReadersNewsletterHandler

logger = logging.getLogger(__name__)

__all__ = [
    'NewsletterHandler',
    'SingleFeedHandler',
    'MultipleFeedsHandler',
    'build_handlers',
]


def build_handlers(disabled_codes: Iterable[str] = ()) -> Tuple[NewsletterHandler, ...]:
    """
    Build the registry of newsletter handlers.

    Args:
        disabled_codes: Newsletter codes to disable; a handler is left out
            when any of its newsletters is disabled

    Returns:
        Ordered tuple of handler instances
    """
    disabled = {code.strip() for code in disabled_codes if code.strip()}
    handlers = (
        AndroidWeeklyNewsletterHandler(),
        KotlinWeeklyNewsletterHandler(),
        MITWeekendReadsNewsletterHandler(),
        PointerNewsletterHandler(),
        TechReadersNewsletterHandler(),
    )

    enabled = []
    for handler in handlers:
        codes = {n.code for n in handler.newsletters}
        if codes & disabled:
            logger.info(f"Handler {handler.name} disabled ({', '.join(sorted(codes & disabled))})")
            continue
        enabled.append(handler)

    logger.info(f"Registered {len(enabled)} newsletter handler(s): {[h.name for h in enabled]}")
    return tuple(enabled)
