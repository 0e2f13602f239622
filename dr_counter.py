import threading
from collections import namedtuple
from datetime import datetime


CounterSnapshot = namedtuple(
    "CounterSnapshot", ["success", "fail", "since_ok", "since_failed", "since_started"]
)


def fmt_elapsed(delta):
    if delta is None:
        return "never"
    return f"{delta.total_seconds():.3f}s"


class Counter:
    """
    Running tally of request outcomes for one requester.
    Every read and write holds the same lock so a report never sees a half updated count.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.success = 0
        self.fail = 0
        self.started = datetime.now()
        self.last_ok = None
        self.last_failed = None

    def ok(self):
        with self._lock:
            self.success += 1
            self.last_ok = datetime.now()

    def failed(self):
        with self._lock:
            self.fail += 1
            self.last_failed = datetime.now()

    record_success = ok
    record_failure = failed

    def snapshot(self):
        """
        Read the counts and elapsed times in one locked step
        """
        with self._lock:
            now = datetime.now()
            return CounterSnapshot(
                self.success,
                self.fail,
                now - self.last_ok if self.last_ok else None,
                now - self.last_failed if self.last_failed else None,
                now - self.started,
            )

    def describe(self):
        snap = self.snapshot()
        return (
            f"Success ({fmt_elapsed(snap.since_ok)}): {snap.success}, "
            f"Failed ({fmt_elapsed(snap.since_failed)}): {snap.fail}, "
            f"since {fmt_elapsed(snap.since_started)}"
        )

    def __str__(self):
        return self.describe()
