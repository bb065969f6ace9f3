"""
Content Negotiation

Selects the response representation from the request's Accept header.
The result is a MediaType member chosen once per request.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

from enum import Enum
from typing import List, Optional, Sequence, Tuple


class MediaType(Enum):
    """Representations served by the inventory endpoints"""
    JSON = "application/json"
    XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    LMS = "application/vnd.oracle.lms+vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    HOST_DATA = "application/vnd.inventory.hostdata+json"


JSON_OR_XLSX = (MediaType.JSON, MediaType.XLSX)
JSON_OR_HOST_DATA = (MediaType.JSON, MediaType.HOST_DATA)
HOSTS_OFFERS = (MediaType.JSON, MediaType.LMS, MediaType.XLSX, MediaType.HOST_DATA)


def parse_accept(header: Optional[str]) -> List[Tuple[str, str, float]]:
    """
    Parse an Accept header into (type, subtype, q) triples

    Malformed ranges and q-values are skipped rather than rejected.
    """
    specs = []
    if not header:
        return specs
    for part in header.split(","):
        fields = [f.strip() for f in part.split(";")]
        media_range = fields[0].lower()
        if "/" not in media_range:
            continue
        main, sub = media_range.split("/", 1)
        q = 1.0
        for param in fields[1:]:
            name, _, value = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    q = float(value)
                except ValueError:
                    q = 0.0
        specs.append((main, sub, q))
    return specs


def negotiate(
    accept: Optional[str],
    offers: Sequence[MediaType],
    default: MediaType = MediaType.JSON,
) -> MediaType:
    """
    Choose the offer best matching the Accept header

    Each offer takes the q of its most specific matching range, so an
    exact type with q=0 is refused even when a wildcard accepts it. The
    highest q wins; between equal q an exact match beats type/* which
    beats */*, and remaining ties go to the earlier offer.

    Args:
        accept: Raw Accept header, may be None
        offers: Media types the endpoint can produce, in preference order
        default: Returned when nothing acceptable is offered

    Returns:
        The selected media type
    """
    ranges = parse_accept(accept)
    best = default
    best_q = -1.0
    best_specificity = -1
    for offer in offers:
        offer_main, offer_sub = offer.value.split("/", 1)
        offer_q = -1.0
        offer_specificity = -1
        for main, sub, q in ranges:
            if main == "*" and sub == "*":
                specificity = 0
            elif main == offer_main and sub == "*":
                specificity = 1
            elif main == offer_main and sub == offer_sub:
                specificity = 2
            else:
                continue
            if specificity > offer_specificity:
                offer_q, offer_specificity = q, specificity
        if offer_q > best_q or (offer_q == best_q and offer_specificity > best_specificity):
            best, best_q, best_specificity = offer, offer_q, offer_specificity
    if best_q <= 0:
        return default
    return best
