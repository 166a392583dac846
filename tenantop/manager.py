"""
The OperatorManager wires a store, one informer per managed kind and the
controllers together and owns their shared lifecycle
"""

# Standard
from typing import Dict, List, Optional
import threading

# First Party
import alog

# Local
from . import config
from .cache import Informer
from .controller import Controller
from .controllers import CONTROLLERS
from .exceptions import assert_config
from .store import StoreBase
from .utils import Clock

log = alog.use_channel("MNGR")


class OperatorManager:
    """Runs a set of controllers against one store"""

    def __init__(
        self,
        store: StoreBase,
        controller_names: Optional[List[str]] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            store:  StoreBase
                The store every informer and controller talks to
            controller_names:  Optional[List[str]]
                The controllers to run. Defaults to the controllers config.
            clock:  Optional[Clock]
                The clock handed to the controllers
        """
        self.store = store
        self.shutdown = threading.Event()
        self.clock = clock or Clock()

        controller_names = list(controller_names or config.controllers)
        for name in controller_names:
            assert_config(
                name in CONTROLLERS,
                f"Unknown controller {name}. Options: {sorted(CONTROLLERS)}",
            )

        self.informers: Dict[str, Informer] = {}
        self.controllers: List[Controller] = []
        for name in controller_names:
            controller_type = CONTROLLERS[name]
            informer = Informer(
                store,
                controller_type.kind,
                controller_type.api_version,
                shutdown=self.shutdown,
            )
            self.informers[name] = informer
            self.controllers.append(
                controller_type(store, informer, clock=self.clock)
            )
        self._threads: List[threading.Thread] = []

    def start(self, threadiness: Optional[int] = None):
        """Start the informers and run every controller in its own thread"""
        log.info("Starting %d controllers", len(self.controllers))
        for informer in self.informers.values():
            informer.start_thread()
        for controller in self.controllers:
            thread = threading.Thread(
                target=controller.run,
                kwargs={"threadiness": threadiness, "stop_event": self.shutdown},
                name=f"{controller.name}_controller",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()

    def stop(self):
        """Signal every informer and controller to stop"""
        log.info("Stopping controllers")
        self.shutdown.set()

    def wait(self, timeout: Optional[float] = None):
        """Block until stopped, then join every thread"""
        self.shutdown.wait(timeout)
        for thread in self._threads:
            thread.join(timeout)
        for informer in self.informers.values():
            informer.join(timeout)

    @property
    def failed(self) -> bool:
        """Whether an informer gave up on its watch"""
        return any(informer.failed for informer in self.informers.values())
