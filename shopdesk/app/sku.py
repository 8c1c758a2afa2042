import re
import secrets

_SKU_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_NON_ALNUM = re.compile(r"[^A-Z0-9]+")


def generate_sku(name: str) -> str:
    # "Blue Mug 350ml" -> "BLUE-MUG-7K2QF"
    prefix = _NON_ALNUM.sub("-", (name or "").upper()).strip("-")[:8]
    suffix = "".join(secrets.choice(_SKU_ALPHABET) for _ in range(5))
    return f"{prefix or 'PRD'}-{suffix}"
