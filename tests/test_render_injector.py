import unittest
from datetime import datetime, timezone

from calendar_enhanced.domain.categories import CalendarEvent
from calendar_enhanced.domain.mapping import MappingEntry
from calendar_enhanced.services.appearance import AppearanceService
from calendar_enhanced.services.category_mapper import CategoryMapper
from calendar_enhanced.services.render_injector import EventDisplay
from calendar_enhanced.services.settings_store import MemorySettingsStore

DEFAULT_URL = '/static/images/default-fallback.svg'


def fake_image_url(ref, size):
    return '' if ref.startswith('missing') else f'https://img.test/{size}/{ref}'


class EventDisplayTestCase(unittest.TestCase):
    # 2024-03-10 23:30 UTC is already 2024-03-11 in Berlin.
    now = datetime(2024, 3, 10, 23, 30, tzinfo=timezone.utc)
    default_url = DEFAULT_URL

    def setUp(self):
        self.mapper = CategoryMapper(MemorySettingsStore())
        default_url = self.default_url
        self.appearance = AppearanceService(self.mapper, fake_image_url, lambda: default_url)
        self.display = EventDisplay(self.appearance, timezone='Europe/Berlin', clock=lambda: self.now)


class LabelFilterTests(EventDisplayTestCase):
    def setUp(self):
        super().setUp()
        self.mapper.save_mappings([
            MappingEntry('Meeting', 'meeting.png', '#3366ff'),
            MappingEntry('ColorOnly', color='#f00'),
        ])

    def test_wraps_title_with_icon_and_subtitle(self):
        html = self.display.filter_event_label_html(
            '<a href="/e/1">Standup &amp; coffee</a>', {}, {'categories': 'Meeting', 'dtstart_date': '20240311'}
        )
        self.assertEqual(
            html,
            '<span class="ics-enhanced-event-wrapper">'
            '<span class="ics-enhanced-event-media">'
            '<img src="https://img.test/thumbnail/meeting.png" alt="Icon for category: Meeting" '
            'class="ics-enhanced-event-category-image" />'
            '</span>'
            '<span class="ics-enhanced-event-text">'
            '<span class="ics-enhanced-event-title"><a href="/e/1">Standup &amp; coffee</a></span>'
            '<span class="ics-enhanced-event-subtitle">Takes place today</span>'
            '</span>'
            '</span>',
        )

    def test_subtitle_counts_days_in_configured_zone(self):
        record = CalendarEvent.from_host({'dtstart_date': '20240312'})
        self.assertEqual(self.display.event_subtitle_text(record), 'In 1 day')
        record = CalendarEvent.from_host({'dtstart_date': '20240320'})
        self.assertEqual(self.display.event_subtitle_text(record), 'In 9 days')
        record = CalendarEvent.from_host({'dtstart_date': '20240310'})
        self.assertEqual(self.display.event_subtitle_text(record), '')

    def test_aware_start_is_converted_before_taking_the_day(self):
        # 23:30 UTC on the 10th is 00:30 on the 11th in Berlin.
        record = CalendarEvent.from_host({'dtstart_date': datetime(2024, 3, 10, 23, 30, tzinfo=timezone.utc)})
        self.assertEqual(self.display.event_subtitle_text(record), 'Takes place today')
        record = CalendarEvent.from_host({'dtstart_date': datetime(2024, 3, 11, 23, 30, tzinfo=timezone.utc)})
        self.assertEqual(self.display.event_subtitle_text(record), 'In 1 day')

    def test_past_event_has_icon_but_no_subtitle(self):
        html = self.display.filter_event_label_html('Title', {}, {'categories': 'Meeting', 'dtstart_date': '20240101'})
        self.assertIn('ics-enhanced-event-category-image', html)
        self.assertNotIn('ics-enhanced-event-subtitle', html)

    def test_subtitle_can_be_switched_off(self):
        self.mapper.save_show_countdown_subline(False)
        html = self.display.filter_event_label_html('Title', {}, {'categories': 'Meeting', 'dtstart_date': '20240312'})
        self.assertNotIn('ics-enhanced-event-subtitle', html)

    def test_unmapped_category_gets_fallback_icon(self):
        html = self.display.filter_event_label_html('Title', {}, {'categories': 'Unknown'})
        self.assertIn(f'src="{DEFAULT_URL}"', html)
        self.assertIn('alt="Icon for category: Unknown"', html)

    def test_non_record_events_are_untouched(self):
        for event in (None, 'Meeting', 42, ['Meeting']):
            with self.subTest(event=event):
                self.assertEqual(self.display.filter_event_label_html('<b>Title</b>', {}, event), '<b>Title</b>')

    def test_alt_names_matched_category(self):
        html = self.display.filter_event_label_html('T', {}, {'categories': 'Unknown, ColorOnly'})
        self.assertIn('alt="Icon for category: ColorOnly"', html)


class NoImageTests(EventDisplayTestCase):
    default_url = ''

    def test_title_returned_unmodified_without_icon_or_subtitle(self):
        title = '<span class="host">Title</span>'
        self.assertEqual(self.display.filter_event_label_html(title, {}, {'categories': 'Unknown'}), title)
        self.assertEqual(
            self.display.filter_event_label_html(title, {}, {'categories': 'Unknown', 'dtstart_date': '20200101'}),
            title,
        )

    def test_subtitle_alone_still_wraps(self):
        html = self.display.filter_event_label_html('T', {}, {'dtstart_date': '20240311'})
        self.assertTrue(html.startswith('<span class="ics-enhanced-event-wrapper">'))
        self.assertNotIn('ics-enhanced-event-media', html)


class EventItemTests(EventDisplayTestCase):
    def test_enriches_item_without_mutating_input(self):
        self.mapper.save_mappings([MappingEntry('Meeting', 'meeting.png')])
        item = {'label': 'Standup'}
        enriched = self.display.filter_event_item(item, {'category': 'Other, meeting'}, {})
        self.assertEqual(item, {'label': 'Standup'})
        self.assertEqual(enriched['label'], 'Standup')
        self.assertEqual(enriched['category'], 'meeting')
        self.assertEqual(enriched['category_image_url'], 'https://img.test/full/meeting.png')
        self.assertIn('https://img.test/thumbnail/meeting.png', str(enriched['category_image_html']))

    def test_unmapped_event_reports_first_candidate(self):
        enriched = self.display.filter_event_item({}, {'categories': 'A, B'}, {})
        self.assertEqual(enriched['category'], 'A')
        self.assertEqual(enriched['category_image_url'], DEFAULT_URL)

    def test_agrees_with_label_filter(self):
        self.mapper.save_mappings([MappingEntry('Meeting', 'meeting.png')])
        event = {'categories': 'Meeting'}
        enriched = self.display.filter_event_item({}, event, {})
        label = self.display.filter_event_label_html('T', {}, event)
        self.assertIn(str(enriched['category_image_html']), label)


class LegendTests(EventDisplayTestCase):
    def test_empty_without_colors(self):
        self.mapper.save_mappings([MappingEntry('Meeting', 'meeting.png')])
        self.assertEqual(str(self.display.render_color_legend('list', {}, None)), '')

    def test_lists_colored_categories_in_table_order(self):
        self.mapper.save_mappings([
            MappingEntry('Zeta', color='#00f'),
            MappingEntry('ImageOnly', 'i.png'),
            MappingEntry('Alpha', 'a.png', '#f00'),
        ])
        html = str(self.display.render_color_legend('list', {}, None))
        self.assertTrue(html.startswith('<div class="ics-enhanced-color-legend"><span class="ics-enhanced-legend-title">Legend</span>'))
        self.assertLess(html.index('Zeta'), html.index('Alpha'))
        self.assertNotIn('ImageOnly', html)
        self.assertIn('style="border-color: #00f; background-color: rgba(0, 0, 255, 0.15);"', html)
        self.assertEqual(html.count('ics-enhanced-legend-icon'), 1)
        self.assertIn('src="https://img.test/thumbnail/a.png"', html)

    def test_labels_are_escaped(self):
        self.mapper.save_mappings([MappingEntry('<script>', color='#000')])
        html = str(self.display.render_color_legend('list', {}, None))
        self.assertNotIn('<script>', html)
        self.assertIn('&lt;script&gt;', html)


class LocationPrefixTests(EventDisplayTestCase):
    def test_prefix_inserted_after_each_location_div(self):
        html = '<div class="descloc"><div class="location">Hall A</div><div class="location">Room 2</div></div>'
        result = self.display.filter_event_description_location_prefix(html, {}, {}, [], True)
        self.assertEqual(result.count('<span class="ics-enhanced-location-prefix">Location: </span>'), 2)
        self.assertIn('<div class="location"><span class="ics-enhanced-location-prefix">Location: </span>Hall A', result)

    def test_other_markup_untouched(self):
        html = '<div class="description">No location here</div>'
        self.assertEqual(self.display.filter_event_description_location_prefix(html, {}, {}, [], True), html)


class ShortcodeTests(EventDisplayTestCase):
    def test_attributes(self):
        self.mapper.save_mappings([MappingEntry('Meeting', 'meeting.png')])
        html = str(self.display.shortcode_category_image(
            {'category': 'Meeting', 'size': 'medium', 'class': 'big one!', 'alt': 'Team'}
        ))
        self.assertIn('src="https://img.test/medium/meeting.png"', html)
        self.assertIn('class="ics-enhanced-category-image ics-enhanced-shortcode-image bigone"', html)
        self.assertIn('alt="Team"', html)

    def test_empty_category(self):
        self.assertEqual(str(self.display.shortcode_category_image({'category': '  '})), '')
