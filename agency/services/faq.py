from __future__ import annotations

import copy
import logging
from typing import Any, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agency.services.form_schema import clean_str
from agency.services.site_settings import read_site_value, write_site_value

_LOG = logging.getLogger("agency.forms")

FAQ_KEY = "faq"
CTA_TYPES = ("none", "enquire", "join", "contact")

DEFAULT_FAQ_ITEMS: list[dict[str, Any]] = [
    {
        "id": "venues-1",
        "category": "For venues & events",
        "question": "What kind of venues do you work with?",
        "answer": (
            "We curate music for restaurants, bars, rooftops, lounges, members' clubs and private events. "
            "The focus is always on atmosphere, matching the music to your brand, guest profile and schedule."
        ),
        "ctaType": "enquire",
        "ctaLabel": "Enquire about a booking",
    },
    {
        "id": "venues-2",
        "category": "For venues & events",
        "question": "How does the booking process work?",
        "answer": (
            "Start by sending an enquiry with details about your venue, schedule and music brief. "
            "We follow up with a short call, then propose artists and a music direction. "
            "Once approved, we lock in dates and send a simple agreement."
        ),
        "ctaType": "enquire",
        "ctaLabel": "Open enquiry form",
    },
    {
        "id": "artists-1",
        "category": "For artists",
        "question": "How do I join the roster?",
        "answer": (
            "Use the join form on the homepage to share your links, current venues and a short intro. "
            "We review every application and will be in touch if there is a suitable fit."
        ),
        "ctaType": "join",
        "ctaLabel": "Apply to join",
    },
    {
        "id": "general-1",
        "category": "General",
        "question": "I still have questions that aren't covered here.",
        "answer": "No problem. Contact us directly and we will route your message to the right person on the team.",
        "ctaType": "contact",
        "ctaLabel": "Contact us",
    },
    {
        "id": "general-2",
        "category": "General",
        "question": "Can you provide DJs and musicians for private events?",
        "answer": (
            "Yes. We regularly curate music for private dinners, brand activations, corporate events "
            "and intimate functions."
        ),
        "ctaType": "none",
    },
    {
        "id": "general-3",
        "category": "General",
        "question": "How far in advance should we book?",
        "answer": (
            "For residencies, earlier is always better. One-off events are typically booked one to four "
            "weeks in advance, though shorter notice is often possible depending on artist availability."
        ),
        "ctaType": "none",
    },
]

DEFAULT_FAQ: dict[str, Any] = {
    "eyebrow": "Help centre",
    "title": "Frequently asked questions.",
    "lead": (
        "A quick guide for venues, events and artists working with us. "
        "If you can't find what you're looking for, just get in touch."
    ),
    "items": DEFAULT_FAQ_ITEMS,
}


def default_faq() -> dict[str, Any]:
    return copy.deepcopy(DEFAULT_FAQ)


def sanitize_faq_item(raw: Any, index: int, seen_ids: set[str]) -> dict[str, Any] | None:
    if not isinstance(raw, Mapping):
        return None
    question = clean_str(raw.get("question"))
    answer = clean_str(raw.get("answer"))
    if not question or not answer:
        return None

    item_id = clean_str(raw.get("id")) or f"faq_{index + 1}"
    while item_id in seen_ids:
        item_id = f"{item_id}_{index + 1}"
    seen_ids.add(item_id)

    cta_type = clean_str(raw.get("ctaType"))
    if cta_type not in CTA_TYPES:
        cta_type = "none"
    item: dict[str, Any] = {"id": item_id, "question": question, "answer": answer, "ctaType": cta_type}
    category = clean_str(raw.get("category"))
    if category:
        item["category"] = category
    cta_label = clean_str(raw.get("ctaLabel"))
    if cta_type != "none" and cta_label:
        item["ctaLabel"] = cta_label
    return item


def sanitize_faq(raw: Mapping[str, Any] | None) -> dict[str, Any]:
    """FAQ page config with defaults in place of empty copy or an empty list."""
    source = raw if isinstance(raw, Mapping) else {}
    raw_items = source.get("items")
    if not isinstance(raw_items, (list, tuple)):
        raw_items = DEFAULT_FAQ_ITEMS
    seen: set[str] = set()
    items: list[dict[str, Any]] = []
    for index, entry in enumerate(raw_items):
        item = sanitize_faq_item(entry, index, seen)
        if item is not None:
            items.append(item)
    return {
        "eyebrow": clean_str(source.get("eyebrow")) or DEFAULT_FAQ["eyebrow"],
        "title": clean_str(source.get("title")) or DEFAULT_FAQ["title"],
        "lead": clean_str(source.get("lead")) or DEFAULT_FAQ["lead"],
        "items": items or copy.deepcopy(DEFAULT_FAQ_ITEMS),
    }


def get_faq(db: Session) -> dict[str, Any]:
    try:
        stored = read_site_value(db, FAQ_KEY)
    except SQLAlchemyError:
        _LOG.exception("faq read failed; serving defaults")
        db.rollback()
        return default_faq()
    if stored is None:
        return default_faq()
    return sanitize_faq(stored)


def save_faq(db: Session, payload: Mapping[str, Any], *, responsible: str | None = None) -> dict[str, Any]:
    data = sanitize_faq(payload)
    write_site_value(db, FAQ_KEY, data, responsible=responsible)
    return data
