# app/common/clock.py
from django.utils import timezone


def now_ms() -> int:
    """Client-local wall clock in epoch milliseconds."""
    return int(timezone.now().timestamp() * 1000)
