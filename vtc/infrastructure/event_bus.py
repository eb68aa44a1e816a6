import logging
from typing import Callable, Dict, List, Type
from vtc.domain.events import Event

EventHandler = Callable[[Event], None]

class EventBus:
    """Synchronous publish/subscribe between the pipeline and the console UI.

    Handlers run in subscription order on the publishing thread; a handler
    error propagates to the publisher. Traced events are also written to the
    debug log, so a `--debug` run records every pipeline decision.
    """

    def __init__(self):
        self._handlers: Dict[Type[Event], List[EventHandler]] = {}
        self.logger = logging.getLogger(__name__)

    def subscribe(self, event_type: Type[Event], handler: EventHandler):
        self._handlers.setdefault(event_type, []).append(handler)

    def publish(self, event: Event):
        if event.traced:
            self.logger.debug(f"EVENT {type(event).__name__}: {event.model_dump_json()}")
        for handler in self._handlers.get(type(event), []):
            handler(event)
