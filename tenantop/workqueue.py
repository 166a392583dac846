"""
Work queues which feed keys to the controller workers. The queues are built in
layers:

* WorkQueue: FIFO of keys which coalesces keys that are already queued and
  never hands out a key that is still being processed
* DelayingQueue: adds keys after a delay using a TimerThread
* RateLimitingQueue: delays re-adds based on a RateLimiter's view of how often
  the key has failed
"""

# Standard
from collections import deque
from typing import Dict, Hashable, Optional, Tuple
import abc
import threading
import time

# First Party
import alog

# Local
from . import config
from .threads import TimerEvent, TimerThread

log = alog.use_channel("WRKQ")

## WorkQueue ###################################################################


class WorkQueue:
    """Thread safe deduplicating FIFO of keys

    A key lives in at most one of three places: waiting in the queue, being
    processed by a worker, or both "processing" and "dirty" when it was
    re-added while a worker held it. The dirty key is put back in the queue
    when the worker calls done().
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._queue = deque()
        self._dirty = set()
        self._processing = set()
        self._cond = threading.Condition()
        self._shutting_down = False

    def add(self, item: Hashable):
        """Mark the item as needing processing"""
        with self._cond:
            if self._shutting_down:
                log.debug3("[%s] Ignoring add of %s after shutdown", self.name, item)
                return
            if item in self._dirty:
                log.debug4("[%s] Coalescing %s", self.name, item)
                return
            self._dirty.add(item)
            if item in self._processing:
                log.debug4("[%s] %s is in flight. Deferring.", self.name, item)
                return
            self._queue.append(item)
            self._cond.notify()

    def get(self, timeout: Optional[float] = None) -> Tuple[Optional[Hashable], bool]:
        """Block until an item is available

        Args:
            timeout:  Optional[float]
                Max seconds to block. If it elapses, (None, False) is returned.

        Returns:
            item:  Optional[Hashable]
                The next item, which must be passed to done() when finished
            shutdown:  bool
                True if the queue is shut down and empty
        """
        with self._cond:
            if not self._queue and not self._shutting_down:
                self._cond.wait_for(
                    lambda: self._queue or self._shutting_down, timeout=timeout
                )
            if not self._queue:
                return None, self._shutting_down
            item = self._queue.popleft()
            self._processing.add(item)
            self._dirty.discard(item)
            return item, False

    def done(self, item: Hashable):
        """Mark the item as done processing. If it was re-added during
        processing it is queued again.
        """
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty:
                self._queue.append(item)
                self._cond.notify()
            elif not self._processing:
                self._cond.notify_all()

    def shut_down(self):
        """Stop accepting items and wake every blocked get()"""
        with self._cond:
            log.debug("[%s] Shutting down", self.name)
            self._shutting_down = True
            self._cond.notify_all()

    def shut_down_with_drain(self, timeout: Optional[float] = None) -> bool:
        """Shut down and wait for the in-flight items to be done

        Returns:
            drained:  bool
                False if the timeout elapsed with items still in flight
        """
        with self._cond:
            self.shut_down()
            return self._cond.wait_for(lambda: not self._processing, timeout=timeout)

    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def is_processing(self, item: Hashable) -> bool:
        with self._cond:
            return item in self._processing

    def __len__(self):
        with self._cond:
            return len(self._queue)


## DelayingQueue ###############################################################


class DelayingQueue(WorkQueue):
    """WorkQueue that can add items after a delay. Pending delayed adds of the
    same item are collapsed to the earliest one.
    """

    def __init__(self, name: str = ""):
        super().__init__(name=name)
        self._timer = TimerThread(name=f"{name or 'workqueue'}_timer")
        self._waiting: Dict[Hashable, TimerEvent] = {}
        self._waiting_lock = threading.Lock()

    def add_after(self, item: Hashable, delay: float):
        """Add the item once the delay (seconds) has passed"""
        if self.shutting_down():
            return
        if delay <= 0:
            self.add(item)
            return

        self._timer.start_thread()
        with self._waiting_lock:
            existing = self._waiting.get(item)
            if existing is not None and not existing.stale:
                if existing.time <= time.monotonic() + delay:
                    log.debug4("[%s] %s already waiting", self.name, item)
                    return
                existing.cancel()
            log.debug3("[%s] Adding %s after %.3fs", self.name, item, delay)
            event = self._timer.put_event(delay, self._add_waiting, item)
            if event is not None:
                self._waiting[item] = event

    def shut_down(self):
        super().shut_down()
        self._timer.stop_thread()

    def _add_waiting(self, item: Hashable):
        with self._waiting_lock:
            self._waiting.pop(item, None)
        self.add(item)


## Rate Limiters ###############################################################


class RateLimiter(abc.ABC):
    """A RateLimiter decides how long an item waits before it is re-added"""

    @abc.abstractmethod
    def when(self, item: Hashable) -> float:
        """Seconds to wait before the item is processed again. Each call
        counts as a failure of the item.
        """

    @abc.abstractmethod
    def forget(self, item: Hashable):
        """Stop tracking the item, resetting its backoff"""

    @abc.abstractmethod
    def num_requeues(self, item: Hashable) -> int:
        """Number of failures recorded for the item"""


class ItemExponentialFailureRateLimiter(RateLimiter):
    """Per-item exponential backoff: base_delay * 2^failures capped at
    max_delay
    """

    def __init__(self, base_delay: float, max_delay: float):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures: Dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def when(self, item):
        with self._lock:
            exponent = self._failures.get(item, 0)
            self._failures[item] = exponent + 1

        # Beyond this the delay is capped anyway and the float would overflow
        if exponent > 62:
            return self.max_delay
        return min(self.base_delay * 2**exponent, self.max_delay)

    def forget(self, item):
        with self._lock:
            self._failures.pop(item, None)

    def num_requeues(self, item):
        with self._lock:
            return self._failures.get(item, 0)


class BucketRateLimiter(RateLimiter):
    """Token bucket limiting the overall rate of re-adds. It does not track
    individual items.
    """

    def __init__(self, qps: float, burst: int, clock=time.monotonic):
        self.qps = qps
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last = clock()
        self._lock = threading.Lock()

    def when(self, item):
        with self._lock:
            now = self._clock()
            self._tokens = min(self.burst, self._tokens + (now - self._last) * self.qps)
            self._last = now

            # Reserve a token, going into debt if none is available
            self._tokens -= 1
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.qps

    def forget(self, item):
        pass

    def num_requeues(self, item):
        return 0


class MaxOfRateLimiter(RateLimiter):
    """Combines limiters by waiting for the longest of their delays"""

    def __init__(self, *limiters: RateLimiter):
        assert limiters, "At least one rate limiter is required"
        self.limiters = limiters

    def when(self, item):
        return max(limiter.when(item) for limiter in self.limiters)

    def forget(self, item):
        for limiter in self.limiters:
            limiter.forget(item)

    def num_requeues(self, item):
        return max(limiter.num_requeues(item) for limiter in self.limiters)


def default_controller_rate_limiter() -> RateLimiter:
    """Per-item exponential backoff combined with an overall token bucket,
    parameterized by the workqueue library config
    """
    return MaxOfRateLimiter(
        ItemExponentialFailureRateLimiter(
            base_delay=float(config.workqueue.base_delay_seconds),
            max_delay=float(config.workqueue.max_delay_seconds),
        ),
        BucketRateLimiter(
            qps=float(config.workqueue.qps),
            burst=int(config.workqueue.burst),
        ),
    )


## RateLimitingQueue ###########################################################


class RateLimitingQueue(DelayingQueue):
    """DelayingQueue whose re-adds are paced by a RateLimiter"""

    def __init__(self, rate_limiter: Optional[RateLimiter] = None, name: str = ""):
        super().__init__(name=name)
        self.rate_limiter = rate_limiter or default_controller_rate_limiter()

    def add_rate_limited(self, item: Hashable):
        """Add the item after the rate limiter says it is ok"""
        self.add_after(item, self.rate_limiter.when(item))

    def forget(self, item: Hashable):
        """Stop tracking failures of the item. This only clears the rate
        limiter; the item must still be passed to done().
        """
        self.rate_limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return self.rate_limiter.num_requeues(item)
