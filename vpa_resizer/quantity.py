"""
Quantity Conversion
CPU and memory quantity parsing and formatting

All comparisons happen in canonical units: integer millicores for CPU and
integer bytes for memory. Decimal suffixes (k, M, G, ...) scale by exact
powers of 1000 rather than an approximate fraction of the binary unit, so
"1G" is 1000000000 bytes, not a rounded 0.953Gi.

Every function here is total: malformed input degrades to 0 (or is echoed
back for display) and never raises, so one bad recommendation cannot abort
a batch. Callers treat 0 as unset.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

KI = 1024
MI = 1024 ** 2
GI = 1024 ** 3

NOT_AVAILABLE = "N/A"

_BINARY_SUFFIXES = {
    'Ki': 1024,
    'Mi': 1024 ** 2,
    'Gi': 1024 ** 3,
    'Ti': 1024 ** 4,
    'Pi': 1024 ** 5,
    'Ei': 1024 ** 6,
}

_DECIMAL_SUFFIXES = {
    'k': 1000,
    'K': 1000,
    'M': 1000 ** 2,
    'G': 1000 ** 3,
    'T': 1000 ** 4,
    'P': 1000 ** 5,
    'E': 1000 ** 6,
}

_NUMBER = r'(\d+(?:\.\d*)?|\.\d+)'
_CPU_RE = re.compile(rf'^{_NUMBER}(m?)$')
_MEMORY_RE = re.compile(rf'^{_NUMBER}([KMGTPE]i|[kKMGTPE])?$')


def _to_decimal(value: str) -> Optional[Decimal]:
    try:
        return Decimal(value)
    except InvalidOperation:
        return None


def parse_cpu_millicores(quantity) -> int:
    """
    Parse a CPU quantity into millicores.

    "250m" -> 250, "2" -> 2000, "0.5" -> 500. Fractions of a millicore are
    floored. Anything unparseable is treated as unset (0).
    """
    if quantity is None or isinstance(quantity, bool):
        return 0
    if isinstance(quantity, (int, float)):
        quantity = str(quantity)

    match = _CPU_RE.match(str(quantity).strip())
    if not match:
        return 0

    number = _to_decimal(match.group(1))
    if number is None:
        return 0

    if match.group(2) == 'm':
        return int(number)
    return int(number * 1000)


def parse_memory_bytes(quantity) -> int:
    """
    Parse a memory quantity into bytes.

    Binary suffixes (Ki..Ei) scale by 1024^n, decimal suffixes (k/K..E) by
    1000^n, a bare number is bytes. Unparseable input returns 0.
    """
    if quantity is None or isinstance(quantity, bool):
        return 0
    if isinstance(quantity, (int, float)):
        quantity = str(quantity)

    match = _MEMORY_RE.match(str(quantity).strip())
    if not match:
        return 0

    number = _to_decimal(match.group(1))
    if number is None:
        return 0

    suffix = match.group(2)
    if not suffix:
        return int(number)
    multiplier = _BINARY_SUFFIXES.get(suffix) or _DECIMAL_SUFFIXES[suffix]
    return int(number * multiplier)


def format_memory(num_bytes: int) -> str:
    """
    Render bytes in the largest unit where the value is at least 1.

    Gi keeps one (truncated) decimal place, Mi and Ki are whole numbers,
    anything below 1Ki stays in plain bytes.
    """
    if num_bytes <= 0:
        return "0"
    if num_bytes >= GI:
        tenths = num_bytes * 10 // GI
        return f"{tenths // 10}.{tenths % 10}Gi"
    if num_bytes >= MI:
        return f"{num_bytes // MI}Mi"
    if num_bytes >= KI:
        return f"{num_bytes // KI}Ki"
    return str(num_bytes)


def memory_request_quantity(num_bytes: int) -> str:
    """Whole-Mi request value for a patch, never below 1Mi."""
    return f"{max(1, num_bytes // MI)}Mi"


def display_memory(quantity: Optional[str]) -> str:
    """Ledger rendering of a recommended memory value."""
    if quantity is None or str(quantity).strip() in ("", NOT_AVAILABLE):
        return NOT_AVAILABLE

    num_bytes = parse_memory_bytes(quantity)
    if num_bytes == 0 and not _MEMORY_RE.match(str(quantity).strip()):
        return str(quantity)
    return format_memory(num_bytes)
