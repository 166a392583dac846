"""
The Controller class is the reconciliation engine shared by every operator. It
connects an Informer to a RateLimitingQueue and runs a pool of workers that
drain the queue through the derived class's sync_handler.
"""

# Standard
from typing import List, Optional, Union
import abc
import threading

# First Party
import alog

# Local
from . import config
from .cache import Informer
from .exceptions import MalformedKeyError, TenantOpError
from .objects import KubeObject, key_for, split_key
from .store import EventRecorder, StoreBase
from .threads import ThreadBase
from .utils import Clock, parse_time_delta, wait_for_condition
from .workqueue import RateLimitingQueue

## Globals #####################################################################

log = alog.use_channel("CTRLR")


## Workers #####################################################################


class WorkerThread(ThreadBase):
    """A WorkerThread processes queue items until the queue shuts down"""

    def __init__(self, controller: "Controller", index: int):
        super().__init__(name=f"{controller.name}_worker_{index}", daemon=True)
        self.controller = controller

    def run(self):
        while self.controller.process_next_work_item():
            pass
        log.debug("%s exiting", self.name)


## Controller ##################################################################


class Controller(abc.ABC):
    """This class represents a controller for a single resource kind. Derived
    classes set the class attributes and implement sync_handler which brings
    the cluster in line with the object identified by a key.
    """

    # Derived classes must set these
    name: str = None
    kind: str = None
    api_version: str = None

    ## Construction ############################################################

    def __init__(  # pylint: disable=too-many-arguments
        self,
        store: StoreBase,
        informer: Informer,
        queue: Optional[RateLimitingQueue] = None,
        recorder: Optional[EventRecorder] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            store:  StoreBase
                The store used for all writes
            informer:  Informer
                The informer for this controller's kind. All reads of the
                primary object go through it.
            queue:  Optional[RateLimitingQueue]
                The work queue. One is created if not given.
            recorder:  Optional[EventRecorder]
                Recorder for events about reconciled objects
            clock:  Optional[Clock]
                Clock used for every time based decision
        """
        assert self.name, "Controller.name must be a non-empty string"
        assert self.kind, "Controller.kind must be a non-empty string"
        assert self.api_version, "Controller.api_version must be a non-empty string"

        self.store = store
        self.informer = informer
        self.clock = clock or Clock()
        self.queue = queue or RateLimitingQueue(name=self.name)
        self.recorder = recorder or EventRecorder(
            store, component=f"{self.name}-controller", clock=self.clock
        )
        self.max_retries = config.max_retries
        self._workers: List[WorkerThread] = []

        self.informer.add_event_handler(
            on_add=self.enqueue,
            on_update=lambda _, new: self.enqueue(new),
            on_delete=self.enqueue,
        )

    def __str__(self):
        return f"Controller({self.api_version}/{self.kind})"

    ## Abstract Interface ######################################################
    #
    # These functions must be implemented by child classes
    ##

    @abc.abstractmethod
    def sync_handler(self, key: str):
        """Reconcile the object with the given key. Implementations re-read
        the object from the informer cache and must be idempotent.

        Error Semantics: Raising a fatal TenantOpError drops the key. Any other
        exception requeues it with rate limiting.
        """

    ## Public Interface ########################################################

    def enqueue(self, obj: Union[KubeObject, dict]):
        """Put the key of the object on the work queue"""
        try:
            key = key_for(obj)
        except MalformedKeyError as err:
            log.warning("Unable to enqueue object: %s", err)
            return
        log.debug3("Enqueueing %s", key)
        self.queue.add(key)

    def enqueue_after(self, obj: Union[KubeObject, dict], delay: float):
        """Put the key of the object on the work queue after a delay"""
        self.queue.add_after(key_for(obj), delay)

    def get_cached(self, key: str) -> Optional[KubeObject]:
        """Look up the primary object of a key in the informer cache

        Raises:
            MalformedKeyError if the key cannot be decoded
        """
        split_key(key)
        return self.informer.get(key)

    def run(
        self,
        threadiness: Optional[int] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> bool:
        """Wait for the informer to sync, then process the queue with
        threadiness workers until the stop_event is set

        Returns:
            started:  bool
                False if the cache did not sync within cache_sync_timeout
        """
        threadiness = threadiness or config.workers
        stop_event = stop_event or threading.Event()

        log.info("Starting %s", self)
        synced = wait_for_condition(
            self.informer.has_synced,
            timeout=parse_time_delta(config.cache_sync_timeout).total_seconds(),
            interval=float(config.cache_sync_poll_interval),
            clock=self.clock,
            stop_check=stop_event.is_set,
        )
        if not synced:
            log.error("Failed to wait for %s cache to sync", self.kind)
            self.queue.shut_down()
            return False

        self.start_workers(threadiness)
        stop_event.wait()
        self.shutdown()
        return True

    def start_workers(self, threadiness: int):
        """Start the worker threads without waiting for the cache"""
        log.info("Starting %d workers for %s", threadiness, self)
        for index in range(threadiness):
            worker = WorkerThread(self, index)
            self._workers.append(worker)
            worker.start_thread()

    def shutdown(self, timeout: Optional[float] = None):
        """Shut the queue down, wait for in-flight items and join the workers"""
        log.info("Shutting down %s", self)
        self.queue.shut_down_with_drain(timeout=timeout)
        for worker in self._workers:
            worker.join(timeout)

    def process_next_work_item(self) -> bool:
        """Take one key off the queue and run the sync handler on it. This
        never raises.

        Returns:
            keep_going:  bool
                False once the queue is shut down
        """
        key, shutdown = self.queue.get()
        if shutdown:
            return False
        if key is None:
            return True
        try:
            self._process(key)
        finally:
            self.queue.done(key)
        return True

    ## Implementation Details ##################################################

    def _process(self, key: str):
        if not self.informer.has_synced():
            log.debug2("Cache for %s not synced. Requeueing %s", self.kind, key)
            self.queue.add_rate_limited(key)
            return

        try:
            log.debug("Syncing %s %s", self.kind, key, extra={"key": key})
            self.sync_handler(key)
        except MalformedKeyError as err:
            log.warning("Dropping malformed key %r: %s", key, err)
            self.queue.forget(key)
        except TenantOpError as err:
            if err.is_fatal_error:
                log.error(
                    "Fatal error syncing %s %s: %s", self.kind, key, err, exc_info=True
                )
                self.queue.forget(key)
            else:
                log.info("Expected error syncing %s %s: %s", self.kind, key, err)
                self._retry(key)
        except Exception as err:  # pylint: disable=broad-except
            log.warning(
                "Unexpected error syncing %s %s: %s", self.kind, key, err, exc_info=True
            )
            self._retry(key)
        else:
            log.debug2("Successfully synced %s %s", self.kind, key)
            self.queue.forget(key)

    def _retry(self, key: str):
        retries = self.queue.num_requeues(key)
        if retries < self.max_retries:
            log.debug2("Requeueing %s after %d retries", key, retries)
            self.queue.add_rate_limited(key)
        else:
            log.warning(
                "Dropping %s out of the queue after %d retries", key, retries
            )
            self.queue.forget(key)
