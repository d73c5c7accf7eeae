# storefront/utils/order_number.py
import secrets
from datetime import datetime, timezone

from storefront.utils.settings import ORDER_NUMBER_PREFIX

_SUFFIX_ALPHABET = "0123456789ABCDEFGHJKLMNPQRSTUVWXYZ"
_SUFFIX_LENGTH = 6


def generate_order_number(now: datetime | None = None, prefix: str = ORDER_NUMBER_PREFIX) -> str:
    """
    Format: PREFIX-YYYYMMDD-XXXXXX, e.g. ORD-20261019-7K3QZ2.
    Uniqueness is enforced by the database; callers retry on collision.
    """
    now = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{prefix}-{now:%Y%m%d}-{suffix}"
