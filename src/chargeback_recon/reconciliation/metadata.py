"""Order number extraction from merchant transaction metadata."""

import re
from typing import Mapping, Optional, Tuple

from ..models import MetadataValue

# Aliases merchants use for the platform order number, in priority order.
KNOWN_METADATA_KEYS: Tuple[str, ...] = (
    "order_number",
    "shopify_order",
    "shopify_order_number",
    "shopify_order_id",
    "pedido",
    "numero_pedido",
    "order_name",
    "shopify_name",
    "external_order_id",
    "external_id",
    "reference",
    "ref",
)

# Anchored both ends and ASCII digits only: phone numbers, postal codes and
# tax IDs must not match.
ORDER_NUMBER_PATTERN = re.compile(r"#?([0-9]{3,7})")


def _known_key_value(value: MetadataValue) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return str(value)
    value = value.strip()
    return value or None


def extract_order_number(metadata: Optional[Mapping[str, MetadataValue]]) -> Optional[str]:
    """Pull an order identifier out of free-form metadata.

    Known keys are checked first and their value is returned as-is (trimmed).
    Failing that, every string value is scanned, accepting only an optional
    '#' followed by 3-7 digits and nothing else; the digits are returned.

    Args:
        metadata: Flat map of scalar values attached by the merchant.

    Returns:
        The order identifier, or None if nothing qualifies.
    """
    if not metadata:
        return None

    for key in KNOWN_METADATA_KEYS:
        if key in metadata:
            found = _known_key_value(metadata[key])
            if found:
                return found

    for value in metadata.values():
        if not isinstance(value, str):
            continue
        match = ORDER_NUMBER_PATTERN.fullmatch(value.strip())
        if match:
            return match.group(1)

    return None
