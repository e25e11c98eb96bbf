"""Extension points exposed by the host calendar renderer.

The host calls ``apply_filters`` while it renders each event and
``do_action`` before it renders a calendar; callbacks registered here are
how category icons and colors get into its markup. Callbacks run in
ascending priority, registration order breaking ties.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, DefaultDict, List

from markupsafe import Markup

logger = logging.getLogger(__name__)

EVENT_LABEL_HTML = 'calendar.event_label_html'
EVENT_ITEM = 'calendar.event_item'
BEFORE_WRAPPER = 'calendar.before_wrapper'
EVENT_DESCRIPTION_HTML = 'calendar.event_description_html'


@dataclass
class _Hook:
    callback: Callable[..., Any]
    priority: int
    order: int


class HookRegistry:

    def __init__(self):
        self._filters: DefaultDict[str, List[_Hook]] = defaultdict(list)
        self._actions: DefaultDict[str, List[_Hook]] = defaultdict(list)
        self._counter = 0

    def _add(self, table, name: str, callback: Callable[..., Any], priority: int) -> None:
        self._counter += 1
        table[name].append(_Hook(callback, priority, self._counter))
        table[name].sort(key=lambda hook: (hook.priority, hook.order))

    def add_filter(self, name: str, callback: Callable[..., Any], priority: int = 10) -> None:
        self._add(self._filters, name, callback, priority)

    def add_action(self, name: str, callback: Callable[..., Any], priority: int = 10) -> None:
        self._add(self._actions, name, callback, priority)

    def has_filter(self, name: str) -> bool:
        return bool(self._filters.get(name))

    def apply_filters(self, name: str, value: Any, *args: Any) -> Any:
        """Thread ``value`` through every filter registered for ``name``."""
        for hook in list(self._filters.get(name, ())):
            value = hook.callback(value, *args)
        return value

    def do_action(self, name: str, *args: Any) -> Markup:
        """Run every action for ``name`` and return their combined output.

        Actions render markup; whatever they return is concatenated in
        order so the host can place it.
        """
        output: List[Markup] = []
        for hook in list(self._actions.get(name, ())):
            rendered = hook.callback(*args)
            if rendered:
                output.append(Markup(rendered))
        return Markup('').join(output)


def register_calendar_hooks(hooks: HookRegistry, display) -> HookRegistry:
    """Attach an `EventDisplay` to the host's extension points."""
    hooks.add_filter(EVENT_LABEL_HTML, display.filter_event_label_html)
    hooks.add_filter(EVENT_ITEM, display.filter_event_item)
    hooks.add_action(BEFORE_WRAPPER, display.render_color_legend)
    hooks.add_filter(EVENT_DESCRIPTION_HTML, display.filter_event_description_location_prefix)
    logger.debug('Calendar display hooks registered')
    return hooks
