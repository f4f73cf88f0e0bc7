"""In-process model of the page surface touched by ad refreshes.

The orchestrator and the provider adapters never talk to a real browser.
They operate on an :class:`AdPage`, which holds exactly what a refresh
reads or mutates:

* ad containers (:class:`AdContainer`) with their markup, attributes and
  injected scripts;
* scripts appended to the document head;
* the vendor globals namespace (``ezstandalone``, ``adsbygoogle``,
  ``atOptions``, ...);
* the visibility flag and lifecycle event listeners.

A host embedding the refresh layer mirrors its DOM into an :class:`AdPage`
(or subclasses it to write through); tests build one directly.

Typical usage::

    page = AdPage([AdContainer("adsterra-banner")])
    page.globals["adsbygoogle"] = []
    page.add_event_listener(PageEventType.FOCUS, on_focus)
    page.dispatch_event(PageEvent(PageEventType.FOCUS))
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

__all__ = [
    "ScriptTag",
    "AdContainer",
    "PageEventType",
    "PageEvent",
    "PageListener",
    "EzStandalone",
    "AdPage",
]

logger = logging.getLogger(__name__)


@dataclass
class ScriptTag:
    """A ``<script>`` element injected by an adapter."""

    src: str
    is_async: bool = True
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass
class AdContainer:
    """An element that hosts rendered ad creative.

    Attributes:
        element_id: The element's ``id``.
        classes: CSS classes (AdSense slots carry ``adsbygoogle``).
        inner_html: Rendered creative markup.
        attributes: Element attributes, e.g. ``data-adsbygoogle-status``.
        scripts: Scripts appended inside the container.
    """

    element_id: str
    classes: set[str] = field(default_factory=set)
    inner_html: str = ""
    attributes: dict[str, str] = field(default_factory=dict)
    scripts: list[ScriptTag] = field(default_factory=list)

    def clear(self) -> None:
        """Drop rendered creative and any scripts appended inside."""
        self.inner_html = ""
        self.scripts.clear()

    def append_script(self, script: ScriptTag) -> None:
        self.scripts.append(script)


class PageEventType(StrEnum):
    """Page lifecycle events the auto-refresh wiring listens for."""

    VISIBILITY_CHANGE = "visibilitychange"
    FOCUS = "focus"
    PAGE_SHOW = "pageshow"


@dataclass(frozen=True)
class PageEvent:
    """A dispatched lifecycle event.

    ``persisted`` is meaningful for ``pageshow`` only: ``True`` when the page
    was restored from the back/forward cache.
    """

    type: PageEventType
    persisted: bool = False


PageListener = Callable[[PageEvent], Any]


class EzStandalone:
    """The ``ezstandalone`` vendor namespace.

    Commands pushed onto :attr:`cmd` run when the vendor library drains its
    queue; :meth:`run_pending` performs that drain.
    """

    def __init__(self) -> None:
        self.cmd: list[Callable[[], Any]] = []
        self.options: dict[str, Any] = {}
        self.shown: list[tuple[int, ...]] = []

    def config(self, options: dict[str, Any]) -> None:
        self.options.update(options)

    def show_ads(self, *placement_ids: int) -> None:
        self.shown.append(tuple(placement_ids))

    def run_pending(self) -> int:
        """Execute and clear the queued commands; return how many ran."""
        pending, self.cmd = self.cmd, []
        for command in pending:
            command()
        return len(pending)


class AdPage:
    """Containers, head scripts, vendor globals and lifecycle listeners.

    Args:
        containers: Initial ad containers.
        hidden: Initial visibility state.
        globals: Initial vendor globals.
    """

    def __init__(
        self,
        containers: Iterable[AdContainer] = (),
        *,
        hidden: bool = False,
        globals: dict[str, Any] | None = None,  # noqa: A002
    ) -> None:
        self._containers: dict[str, AdContainer] = {}
        for container in containers:
            self.add_container(container)
        self.head_scripts: list[ScriptTag] = []
        self.globals: dict[str, Any] = dict(globals or {})
        self.hidden = hidden
        self._listeners: dict[PageEventType, list[PageListener]] = defaultdict(list)

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def add_container(self, container: AdContainer) -> AdContainer:
        self._containers[container.element_id] = container
        return container

    @property
    def containers(self) -> list[AdContainer]:
        return list(self._containers.values())

    def get_element_by_id(self, element_id: str) -> AdContainer | None:
        return self._containers.get(element_id)

    def query_id_prefix(self, prefix: str) -> list[AdContainer]:
        """Containers whose id starts with *prefix* (``[id^="prefix"]``)."""
        return [c for c in self._containers.values() if c.element_id.startswith(prefix)]

    def query_class(self, class_name: str) -> list[AdContainer]:
        """Containers carrying the CSS class *class_name*."""
        return [c for c in self._containers.values() if class_name in c.classes]

    def append_head_script(self, script: ScriptTag) -> None:
        self.head_scripts.append(script)

    # ------------------------------------------------------------------
    # Lifecycle events
    # ------------------------------------------------------------------

    def add_event_listener(self, event_type: PageEventType, listener: PageListener) -> None:
        listeners = self._listeners[event_type]
        if listener not in listeners:
            listeners.append(listener)

    def remove_event_listener(self, event_type: PageEventType, listener: PageListener) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event_type: PageEventType) -> int:
        return len(self._listeners.get(event_type, []))

    def dispatch_event(self, event: PageEvent) -> None:
        """Call every listener registered for ``event.type``, in order.

        A listener that raises is logged and does not stop the others.
        """
        for listener in list(self._listeners.get(event.type, [])):
            try:
                listener(event)
            except Exception:
                logger.exception("Page listener for %s raised", event.type.value)

    def set_hidden(self, hidden: bool) -> None:
        """Change visibility and dispatch ``visibilitychange`` if it changed."""
        if hidden == self.hidden:
            return
        self.hidden = hidden
        self.dispatch_event(PageEvent(PageEventType.VISIBILITY_CHANGE))
