"""Re-apply category icons and colors to already-rendered calendar HTML.

This is the server-side twin of ``static/js/calendar-enhanced.js``. Both
read the same payload (`AppearanceService.client_payload`) and both are
safe to run any number of times over the same markup:

- an event element gets its color once, then carries
  ``data-ics-color-applied="true"`` and is skipped by later scans;
- a title gets its icon once; titles that already hold the icon class or
  sit inside (or contain) the wrapper class are left alone, which is also
  how markup injected by the render hooks is recognised.

Anything missing or malformed skips that one element. Nothing here raises
into the caller; details go to the debug log when the payload asks for it.
"""

from __future__ import annotations

import functools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from bs4 import BeautifulSoup, Tag

from calendar_enhanced.domain.colors import DEFAULT_BACKGROUND_OPACITY, hex_to_rgba, sanitize_hex_color
from calendar_enhanced.domain.categories import split_category_expression
from calendar_enhanced.domain.resolver import CategorySnapshot, resolve_appearance
from calendar_enhanced.services.appearance import DEFAULT_SELECTORS, EVENT_IMAGE_CLASS, EVENT_WRAPPER_CLASS

logger = logging.getLogger(__name__)

COLOR_APPLIED_ATTR = 'data-ics-color-applied'
CATEGORY_COLOR_ATTR = 'data-category-color'
IMAGE_ERROR_CLASS = 'ics-enhanced-image-error'
IMAGE_LOADED_CLASS = 'ics-enhanced-image-loaded'
IMAGE_UNAVAILABLE_ALT = 'Image not available'

EVENT_CONTAINER_SELECTOR = '.event, .r34ics_event, [data-category], [data-categories]'
NESTED_CATEGORY_SELECTOR = '.categories, .category, [data-categories]'
OBSERVED_SELECTOR = '.r34ics, .ics-calendar, .r34ics_event, .event[data-categories]'

DEBOUNCE_SECONDS = 0.1
POST_LOAD_DELAY_SECONDS = 0.5

_FACTORY = BeautifulSoup('', 'html.parser')


def _classes(el: Tag) -> List[str]:
    value = el.get('class') or []
    if isinstance(value, str):
        value = value.split()
    return list(value)


def _parse_style(style: str) -> Dict[str, str]:
    declarations: Dict[str, str] = {}
    for part in (style or '').split(';'):
        name, sep, value = part.partition(':')
        if sep and name.strip():
            declarations[name.strip().lower()] = value.strip()
    return declarations


def _merge_style(style: str, updates: Mapping[str, str]) -> str:
    declarations = _parse_style(style)
    declarations.update(updates)
    return ' '.join(f'{name}: {value};' for name, value in declarations.items())


@dataclass(frozen=True)
class DomFallbackConfig:
    """Typed view of the browser payload."""

    snapshot: CategorySnapshot
    image_class: str = EVENT_IMAGE_CLASS
    wrapper_class: str = EVENT_WRAPPER_CLASS
    selectors: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_SELECTORS))
    border_width: str = '3px'
    background_opacity: float = DEFAULT_BACKGROUND_OPACITY
    debug: bool = False

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, Any]]) -> 'DomFallbackConfig':
        payload = payload or {}
        selectors = dict(DEFAULT_SELECTORS)
        given = payload.get('selectors')
        if isinstance(given, Mapping):
            selectors.update({k: str(v) for k, v in given.items() if v})
        color_settings = payload.get('colorSettings')
        if not isinstance(color_settings, Mapping):
            color_settings = {}
        try:
            opacity = float(color_settings.get('backgroundOpacity') or DEFAULT_BACKGROUND_OPACITY)
        except (TypeError, ValueError):
            opacity = DEFAULT_BACKGROUND_OPACITY
        return cls(
            snapshot=CategorySnapshot.from_payload(payload),
            image_class=str(payload.get('imageClass') or EVENT_IMAGE_CLASS),
            wrapper_class=str(payload.get('wrapperClass') or EVENT_WRAPPER_CLASS),
            selectors=selectors,
            border_width=str(color_settings.get('borderWidth') or '3px'),
            background_opacity=opacity,
            debug=bool(payload.get('debug', False)),
        )


@dataclass
class ScanReport:
    colored: int = 0
    injected: int = 0
    skipped: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.colored or self.injected)

    def __iadd__(self, other: 'ScanReport') -> 'ScanReport':
        self.colored += other.colored
        self.injected += other.injected
        self.skipped += other.skipped
        return self


class DomFallbackEngine:

    def __init__(self, config: DomFallbackConfig):
        self.config = config

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, Any]]) -> 'DomFallbackEngine':
        return cls(DomFallbackConfig.from_payload(payload))

    def _debug(self, msg: str, *args: Any) -> None:
        if self.config.debug:
            logger.debug('[ICS Enhanced] ' + msg, *args)

    def _select(self, root: Tag, key: str) -> List[Tag]:
        selector = self.config.selectors.get(key) or DEFAULT_SELECTORS[key]
        try:
            return list(root.select(selector))
        except Exception as exc:  # soupsieve raises its own SelectorSyntaxError
            self._debug('Bad %s selector %r: %s', key, selector, exc)
            return []

    # -- scanning --------------------------------------------------------

    def scan(self, root: Tag) -> ScanReport:
        """One full pass: icons first, then colors."""
        report = self.inject_category_images(root)
        report += self.apply_category_colors(root)
        self.ensure_lazy_loading(root)
        return report

    def apply_category_colors(self, root: Tag) -> ScanReport:
        report = ScanReport()
        if not self.config.snapshot.colors:
            self._debug('No category colors configured, skipping color application')
            return report
        events = self._select(root, 'eventWrapper')
        self._debug('Found %d events with data-categories', len(events))
        for event_el in events:
            if self.apply_color_to_event(event_el):
                report.colored += 1
            else:
                report.skipped += 1
        return report

    def apply_color_to_event(self, event_el: Tag) -> bool:
        """Color the date box of one event. True when something was applied."""
        if event_el.has_attr(COLOR_APPLIED_ATTR):
            return False

        expression = event_el.get('data-categories') or self.extract_category_expression(event_el)
        if not split_category_expression(expression):
            return False

        resolved = resolve_appearance(expression, self.config.snapshot)
        color = sanitize_hex_color(resolved.color or '')
        background = hex_to_rgba(color, self.config.background_opacity) if color else ''
        if not color or not background:
            if resolved.color:
                self._debug('Malformed color %r for %s', resolved.color, resolved.matched_category)
            return False

        selector = self.config.selectors.get('eventDate') or DEFAULT_SELECTORS['eventDate']
        try:
            date_el = event_el.select_one(selector)
        except Exception as exc:  # soupsieve raises its own SelectorSyntaxError
            self._debug('Bad eventDate selector %r: %s', selector, exc)
            return False
        if date_el is None:
            self._debug('No date element found in event: %s', resolved.matched_category)
            return False

        date_el['style'] = _merge_style(date_el.get('style', ''), {
            'border-color': color,
            'border-width': self.config.border_width,
            'border-style': 'solid',
            'background-color': background,
        })
        event_el[COLOR_APPLIED_ATTR] = 'true'
        date_el[CATEGORY_COLOR_ATTR] = color
        self._debug('Applied color %s to event: %s', color, resolved.matched_category)
        return True

    def extract_category_expression(self, el: Tag) -> str:
        """Category expression for the event that ``el`` belongs to.

        Looks at ``data-categories``, then ``data-category``, then
        ``category-*`` / ``cat-*`` class names, then the text of a nested
        category element.
        """
        event_el = el.css.closest(EVENT_CONTAINER_SELECTOR)
        if event_el is None:
            return ''

        for attr in ('data-categories', 'data-category'):
            value = event_el.get(attr)
            if value and value.strip():
                return value

        from_classes = []
        for name in _classes(event_el):
            for prefix in ('category-', 'cat-'):
                if name.startswith(prefix) and len(name) > len(prefix):
                    from_classes.append(name[len(prefix):])
                    break
        if from_classes:
            return ','.join(from_classes)

        nested = event_el.select_one(NESTED_CATEGORY_SELECTOR)
        if nested is not None:
            return nested.get_text().strip()
        return ''

    def inject_category_images(self, root: Tag) -> ScanReport:
        report = ScanReport()
        snapshot = self.config.snapshot
        if not (snapshot.fallback_image_url or snapshot.default_image_url or snapshot.images):
            self._debug('No images configured, skipping injection')
            return report
        titles = self._select(root, 'eventTitle')
        self._debug('Found %d event titles', len(titles))
        for title_el in titles:
            if self._already_injected(title_el):
                report.skipped += 1
                continue
            resolved = resolve_appearance(self.extract_category_expression(title_el), self.config.snapshot)
            if not resolved.image_url:
                report.skipped += 1
                continue
            category = resolved.matched_category or resolved.image_category or ''
            self.inject_image_into_title(title_el, resolved.image_url, category)
            report.injected += 1
        return report

    def _already_injected(self, title_el: Tag) -> bool:
        if title_el.select_one('.' + self.config.image_class) is not None:
            self._debug('Title already has image, skipping')
            return True
        wrapper = '.' + self.config.wrapper_class
        if title_el.css.closest(wrapper) is not None or title_el.select_one(wrapper) is not None:
            self._debug('Server-side wrapper found, skipping')
            return True
        return False

    def inject_image_into_title(self, title_el: Tag, image_url: str, category: str = '') -> Tag:
        """Move the title's content into the same wrapper the render hooks emit."""
        img = _FACTORY.new_tag('img', attrs={
            'src': image_url,
            'alt': f'Icon for category: {category}' if category else 'Event image',
            'class': self.config.image_class,
            'loading': 'lazy',
        })
        media = _FACTORY.new_tag('span', attrs={'class': 'ics-enhanced-event-media'})
        media.append(img)
        title_span = _FACTORY.new_tag('span', attrs={'class': 'ics-enhanced-event-title'})
        for child in list(title_el.contents):
            title_span.append(child.extract())
        text = _FACTORY.new_tag('span', attrs={'class': 'ics-enhanced-event-text'})
        text.append(title_span)
        wrapper = _FACTORY.new_tag('span', attrs={'class': self.config.wrapper_class})
        wrapper.append(media)
        wrapper.append(text)
        title_el.append(wrapper)
        self._debug('Injected image for category: %s', category or '(fallback)')
        return wrapper

    def ensure_lazy_loading(self, root: Tag) -> None:
        for img in root.select('img.' + self.config.image_class):
            if not img.has_attr('loading'):
                img['loading'] = 'lazy'

    # -- image load events -----------------------------------------------

    def handle_image_error(self, img: Tag) -> str:
        """React to a failed load: ``'retry'`` with the fallback, else ``'hidden'``."""
        classes = _classes(img)
        if IMAGE_ERROR_CLASS not in classes:
            img['class'] = classes + [IMAGE_ERROR_CLASS]
        snapshot = self.config.snapshot
        fallback = snapshot.fallback_image_url or snapshot.default_image_url
        if fallback and img.get('src') != fallback:
            self._debug('Image failed to load, trying fallback')
            img['src'] = fallback
            return 'retry'
        img['alt'] = IMAGE_UNAVAILABLE_ALT
        img['style'] = _merge_style(img.get('style', ''), {'display': 'none'})
        return 'hidden'

    def handle_image_load(self, img: Tag) -> None:
        classes = [name for name in _classes(img) if name != 'loading']
        if IMAGE_LOADED_CLASS not in classes:
            classes.append(IMAGE_LOADED_CLASS)
        img['class'] = classes


def is_calendar_node(node: Any) -> bool:
    if not isinstance(node, Tag):
        return False
    return bool(node.css.match(OBSERVED_SELECTOR)) or node.select_one(OBSERVED_SELECTOR) is not None


class DomObserver:
    """Debounced re-scanning of a tree that keeps receiving new nodes.

    `start` scans once and schedules a catch-up scan after the page has
    loaded. Each `notify` carrying calendar markup restarts the debounce
    timer, so a burst of insertions produces a single re-scan.
    """

    def __init__(
        self,
        engine: DomFallbackEngine,
        root: Tag,
        *,
        debounce: float = DEBOUNCE_SECONDS,
        post_load_delay: float = POST_LOAD_DELAY_SECONDS,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        self.engine = engine
        self.root = root
        self.debounce = debounce
        self.post_load_delay = post_load_delay
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._scan_lock = threading.Lock()
        self._pending = None
        self._post_load = None
        # Bumped by every notify and stop; a timer only acts for its own generation.
        self._generation = 0
        self.scans = 0

    def _schedule(self, delay: float, callback: Callable[[], None]):
        timer = self._timer_factory(delay, callback)
        if hasattr(timer, 'daemon'):
            timer.daemon = True
        timer.start()
        return timer

    def rescan(self) -> ScanReport:
        with self._scan_lock:
            self.scans += 1
            return self.engine.scan(self.root)

    def start(self) -> ScanReport:
        report = self.rescan()
        with self._lock:
            self._post_load = self._schedule(self.post_load_delay, self._run_post_load)
        return report

    def _run_post_load(self) -> None:
        with self._lock:
            if self._post_load is None:
                return
            self._post_load = None
        self.engine._debug('Running post-load injection')
        self.rescan()

    def _run_pending(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._pending = None
        self.rescan()

    def notify(self, added_nodes: Iterable[Any]) -> bool:
        """Record inserted nodes; True when a re-scan was (re)scheduled."""
        if not any(is_calendar_node(node) for node in added_nodes):
            return False
        self.engine._debug('Dynamic content detected, re-processing')
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
            self._generation += 1
            self._pending = self._schedule(
                self.debounce, functools.partial(self._run_pending, self._generation)
            )
        return True

    def stop(self) -> None:
        with self._lock:
            self._generation += 1
            for timer in (self._pending, self._post_load):
                if timer is not None:
                    timer.cancel()
            self._pending = None
            self._post_load = None


def apply_dom_fallback(html: str, payload: Optional[Mapping[str, Any]]) -> str:
    """Run one scan over an HTML document; unchanged input comes back as-is."""
    if not html:
        return html
    engine = DomFallbackEngine.from_payload(payload)
    soup = BeautifulSoup(html, 'html.parser')
    report = engine.scan(soup)
    if not report.changed:
        return html
    return str(soup)
