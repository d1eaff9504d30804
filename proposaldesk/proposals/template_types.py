"""
Template types: one case table for the four proposal variants.

Every component that behaves differently per template (which item collection
is active, whether images are drawn, which renderer runs, what the document is
titled) reads it from TEMPLATES instead of probing the type string.
"""

import logging
from collections import namedtuple

from proposaldesk.core.errors import UnknownTemplateError

log = logging.getLogger("proposaldesk.templates")

SIMPLE_COMMERCIAL = "simple-commercial"
TECHNICAL_RFQ = "technical-rfq"
COMMERCIAL_WITH_IMAGES = "commercial-with-images"
TECHNICAL_WITH_IMAGES = "technical-with-images"

DEFAULT_TEMPLATE = SIMPLE_COMMERCIAL

COMMERCIAL = "commercial"
TECHNICAL = "technical"

TemplateSpec = namedtuple("TemplateSpec", [
    "key",                 # template_type value
    "kind",                # COMMERCIAL | TECHNICAL: item variant + renderer
    "collection_key",      # "products" | "rfq_items"
    "uses_images",
    "title",               # document title printed by the renderer
])

TEMPLATES = {
    SIMPLE_COMMERCIAL: TemplateSpec(
        SIMPLE_COMMERCIAL, COMMERCIAL, "products", False, "COMMERCIAL OFFER"),
    COMMERCIAL_WITH_IMAGES: TemplateSpec(
        COMMERCIAL_WITH_IMAGES, COMMERCIAL, "products", True,
        "COMMERCIAL OFFER WITH PRODUCT IMAGES"),
    TECHNICAL_RFQ: TemplateSpec(
        TECHNICAL_RFQ, TECHNICAL, "rfq_items", False, "COMMERCIAL OFFER"),
    TECHNICAL_WITH_IMAGES: TemplateSpec(
        TECHNICAL_WITH_IMAGES, TECHNICAL, "rfq_items", True,
        "TECHNICAL OFFER WITH IMAGES"),
}

TEMPLATE_TYPES = tuple(TEMPLATES)


def get_template(template_type: str = None) -> TemplateSpec:
    """TemplateSpec for ``template_type``. Empty/None means the default template."""
    if not template_type:
        return TEMPLATES[DEFAULT_TEMPLATE]
    try:
        return TEMPLATES[template_type]
    except KeyError:
        raise UnknownTemplateError(template_type) from None


def uses_products(template_type: str) -> bool:
    return get_template(template_type).kind == COMMERCIAL


def uses_technical_items(template_type: str) -> bool:
    return get_template(template_type).kind == TECHNICAL


def uses_images(template_type: str) -> bool:
    return get_template(template_type).uses_images


def active_collection_key(template_type: str) -> str:
    return get_template(template_type).collection_key


def active_items(proposal: dict) -> list | None:
    """The item list the proposal's template type reads, or None if absent."""
    key = active_collection_key(proposal.get("template_type"))
    return proposal.get(key)


def describe(template_type: str) -> dict:
    """Flat dict view, used by the API."""
    tpl = get_template(template_type)
    return {
        "template_type": tpl.key,
        "active_collection": tpl.collection_key,
        "uses_images": tpl.uses_images,
        "uses_products": tpl.kind == COMMERCIAL,
        "uses_technical_items": tpl.kind == TECHNICAL,
        "title": tpl.title,
    }
