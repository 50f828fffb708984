"""
Distribution reductions over a filtered event batch.

Event type counts, a per-minute timeline, page views by URL and product
interactions. Tallies use insertion-ordered dicts and stable sorts so equal
counts always come out in first-seen order.
"""

import logging
from datetime import tzinfo
from typing import Dict, Iterable, List, Optional, Tuple

from clickstream.models import CountEntry, EventRecord, ProductInteraction, number_value, text_value

logger = logging.getLogger(__name__)

PAGE_VIEW_TYPES = ("page_view", "pageview")
ADD_TO_CART = "add_to_cart"
ADD_TO_CART_TEXT = "Add to Cart"


def _ranked(counts: Dict[str, int]) -> List[CountEntry]:
    ordered = sorted(counts.items(), key=lambda x: x[1], reverse=True)
    return [CountEntry(key=k, count=c) for k, c in ordered]


def count_event_types(events: Iterable[EventRecord]) -> List[CountEntry]:
    counts: Dict[str, int] = {}
    for event in events:
        if not event.event_type:
            continue
        counts[event.event_type] = counts.get(event.event_type, 0) + 1
    return _ranked(counts)


def build_timeline(events: Iterable[EventRecord], tz: Optional[tzinfo] = None) -> List[CountEntry]:
    """
    Count events per wall-clock minute ("H:MM").

    ``tz`` defaults to the host's local zone. Buckets are ordered by minute of
    day, not lexicographically.
    """
    buckets: Dict[Tuple[int, int], int] = {}
    for event in events:
        local = event.created_at.astimezone(tz)
        key = (local.hour, local.minute)
        buckets[key] = buckets.get(key, 0) + 1

    return [
        CountEntry(key=f"{hour}:{minute:02d}", count=count)
        for (hour, minute), count in sorted(buckets.items(), key=lambda x: x[0][0] * 60 + x[0][1])
    ]


def count_page_views(events: Iterable[EventRecord]) -> List[CountEntry]:
    counts: Dict[str, int] = {}
    for event in events:
        if event.event_type not in PAGE_VIEW_TYPES:
            continue
        if not event.page_url:
            logger.debug(f"Skipping page view without URL: event {event.id}")
            continue
        counts[event.page_url] = counts.get(event.page_url, 0) + 1
    return _ranked(counts)


def _is_product_event(event: EventRecord) -> bool:
    if event.event_type == ADD_TO_CART:
        return True
    return event.event_type == "click" and text_value(event.event_data, "text") == ADD_TO_CART_TEXT


def count_product_interactions(events: Iterable[EventRecord]) -> List[ProductInteraction]:
    """
    Count add-to-cart interactions per product name.

    Price and category come from the first event seen for a product; later
    events only bump the counter.
    """
    products: Dict[str, Dict] = {}
    for event in events:
        if not _is_product_event(event):
            continue

        name = text_value(event.event_data, "product_name")
        if not name:
            logger.debug(f"Skipping product event without name: event {event.id}")
            continue

        if name in products:
            products[name]["count"] += 1
        else:
            products[name] = {
                "count": 1,
                "price": number_value(event.event_data, "product_price"),
                "category": text_value(event.event_data, "product_category"),
            }

    return [
        ProductInteraction(name=name, count=p["count"], price=p["price"], category=p["category"])
        for name, p in products.items()
    ]
