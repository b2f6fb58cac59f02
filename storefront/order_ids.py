import random
import string
import threading
from datetime import datetime

# Counter value used at process start and after every local midnight.
COUNTER_START = 1000
SUFFIX_ALPHABET = string.digits + string.ascii_uppercase


class OrderIdGenerator:
    """
    Issues order identifiers of the form RR-YYYYMMDD-CCCC-SSSS.

    CCCC is an in-process counter, zero-padded to four digits, that restarts
    when the local date changes. SSSS is four random base-36 characters.
    The same value is used as both orderId and orderNumber.
    """

    def __init__(self, clock=datetime.now, rng=None, prefix="RR"):
        self._clock = clock
        self._rng = rng or random.SystemRandom()
        self._prefix = prefix
        self._lock = threading.Lock()
        self._day = None
        self._counter = COUNTER_START

    def next_id(self):
        now = self._clock()
        with self._lock:
            if now.date() != self._day:
                self._day = now.date()
                self._counter = COUNTER_START
            counter = self._counter
            self._counter += 1
        suffix = "".join(self._rng.choice(SUFFIX_ALPHABET) for _ in range(4))
        return f"{self._prefix}-{now:%Y%m%d}-{counter:04d}-{suffix}"
