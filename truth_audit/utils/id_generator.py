"""
Short prefixed ID generator for audit records.

Format: {prefix}_{base36_random}
- ar_xxxxxxxx  - audit_run
- pr_xxxxxxxx  - product

8 chars base36 = 36^8 = 2.8 trillion unique IDs per type
"""
import secrets

# Base36 alphabet (lowercase letters + digits)
ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
BASE = len(ALPHABET)  # 36

PREFIXES = {
    'audit_run': 'ar',
    'product': 'pr',
}


def _random_base36(length: int = 8) -> str:
    return ''.join(ALPHABET[secrets.randbelow(BASE)] for _ in range(length))


def generate_id(record_type: str) -> str:
    """
    Generate a new short ID for the given record type.

    Raises:
        ValueError: If record_type is invalid
    """
    if record_type not in PREFIXES:
        raise ValueError(f"Invalid record type: {record_type}. "
                        f"Must be one of: {list(PREFIXES.keys())}")
    return f"{PREFIXES[record_type]}_{_random_base36(8)}"
