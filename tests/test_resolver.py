"""Resolution rules shared by the render hooks, the DOM pass and the browser."""

import unittest

from calendar_enhanced.domain.mapping import MappingEntry, MappingTable
from calendar_enhanced.domain.resolver import (
    CategorySnapshot,
    ImageTier,
    build_snapshot,
    resolve_appearance,
    resolve_category_expression,
)

DEFAULT_URL = '/static/images/default-fallback.svg'


def fake_image_url(ref, size):
    if ref.startswith('missing'):
        return ''
    return f'https://img.test/{size}/{ref}'


def resolve(raw, table, fallback='', size='full'):
    return resolve_category_expression(
        raw,
        table,
        fallback,
        image_url=fake_image_url,
        default_image_url=DEFAULT_URL,
        size=size,
    )


class ResolverTests(unittest.TestCase):
    def setUp(self):
        self.table = MappingTable([
            MappingEntry('Meeting', 'meeting.png', '#3366ff'),
            MappingEntry('ColorOnly', color='#f00'),
            MappingEntry('ImageOnly', 'image-only.png'),
            MappingEntry('Gone', 'missing.png', '#0f0'),
        ])

    def test_full_mapping(self):
        result = resolve('Meeting', self.table)
        self.assertEqual(result.image_url, 'https://img.test/full/meeting.png')
        self.assertEqual(result.color, '#3366ff')
        self.assertEqual(result.matched_category, 'Meeting')
        self.assertEqual(result.image_tier, ImageTier.SPECIFIC)

    def test_case_and_whitespace_insensitive(self):
        expected = resolve('Meeting', self.table)
        for variant in ('meeting', '  MEETING ', 'MeEtInG'):
            with self.subTest(variant=variant):
                result = resolve(variant, self.table)
                self.assertEqual(result.image_url, expected.image_url)
                self.assertEqual(result.color, expected.color)

    def test_unmapped_first_candidate_is_skipped(self):
        result = resolve('Unknown, ImageOnly', self.table)
        self.assertEqual(result.image_url, 'https://img.test/full/image-only.png')
        self.assertIsNone(result.color)
        self.assertEqual(result.matched_category, 'ImageOnly')

    def test_color_and_image_come_from_different_categories(self):
        # The first category with *any* mapping drives color and
        # matched_category; the image scan continues past it.
        result = resolve('ColorOnly,ImageOnly', self.table)
        self.assertEqual(result.matched_category, 'ColorOnly')
        self.assertEqual(result.color, '#f00')
        self.assertEqual(result.image_url, 'https://img.test/full/image-only.png')
        self.assertEqual(result.image_category, 'ImageOnly')

    def test_general_fallback_then_bundled_default(self):
        with_fallback = resolve('Unknown', self.table, fallback='general.png')
        self.assertEqual(with_fallback.image_url, 'https://img.test/full/general.png')
        self.assertEqual(with_fallback.image_tier, ImageTier.GENERAL_FALLBACK)
        self.assertIsNone(with_fallback.matched_category)

        without = resolve('Unknown', self.table)
        self.assertEqual(without.image_url, DEFAULT_URL)
        self.assertEqual(without.image_tier, ImageTier.BUNDLED_DEFAULT)

    def test_empty_expression_uses_fallback_only(self):
        for raw in (None, '', ' , ,'):
            with self.subTest(raw=raw):
                result = resolve(raw, self.table, fallback='general.png')
                self.assertEqual(result.image_url, 'https://img.test/full/general.png')
                self.assertIsNone(result.color)
                self.assertIsNone(result.matched_category)

    def test_image_is_never_empty(self):
        for raw in (None, 'Unknown', 'ColorOnly'):
            with self.subTest(raw=raw):
                self.assertTrue(resolve(raw, MappingTable() if raw is None else self.table).image_url)

    def test_deleted_asset_moves_to_next_tier(self):
        result = resolve('Gone', self.table, fallback='missing-too.png')
        self.assertEqual(result.image_url, DEFAULT_URL)
        # Still mapped: its color applies.
        self.assertEqual(result.matched_category, 'Gone')
        self.assertEqual(result.color, '#0f0')

    def test_deleted_asset_continues_scan(self):
        result = resolve('Gone, ImageOnly', self.table)
        self.assertEqual(result.image_url, 'https://img.test/full/image-only.png')
        self.assertEqual(result.color, '#0f0')

    def test_size_hint_reaches_media_layer(self):
        result = resolve('Meeting', self.table, size='thumbnail')
        self.assertEqual(result.image_url, 'https://img.test/thumbnail/meeting.png')

    def test_list_expression(self):
        result = resolve(['Unknown', 'ImageOnly'], self.table)
        self.assertEqual(result.matched_category, 'ImageOnly')


class SnapshotPayloadTests(unittest.TestCase):
    def setUp(self):
        table = MappingTable([
            MappingEntry('ColorOnly', color='#f00'),
            MappingEntry('ImageOnly', 'image-only.png'),
            MappingEntry('Gone', 'missing.png'),
        ])
        self.snapshot = build_snapshot(
            table, 'general.png', image_url=fake_image_url, default_image_url=DEFAULT_URL, size='thumbnail'
        )

    def test_payload_shape(self):
        payload = self.snapshot.to_payload()
        self.assertEqual(payload['fallbackImage'], 'https://img.test/thumbnail/general.png')
        self.assertEqual(payload['defaultImage'], DEFAULT_URL)
        self.assertEqual(payload['categoryImages'], {'ImageOnly': 'https://img.test/thumbnail/image-only.png'})
        self.assertEqual(payload['categoryColors'], {'ColorOnly': '#f00'})
        self.assertEqual(payload['mappedCategories'], ['ColorOnly', 'ImageOnly', 'Gone'])

    def test_payload_resolves_like_the_server(self):
        rebuilt = CategorySnapshot.from_payload(self.snapshot.to_payload())
        for raw in ('ColorOnly,ImageOnly', 'Gone', 'Unknown', '', 'imageonly'):
            with self.subTest(raw=raw):
                self.assertEqual(resolve_appearance(raw, rebuilt), resolve_appearance(raw, self.snapshot))

    def test_payload_without_mapped_list(self):
        payload = self.snapshot.to_payload()
        del payload['mappedCategories']
        rebuilt = CategorySnapshot.from_payload(payload)
        self.assertTrue(rebuilt.has_mapping('colorONLY'))
        self.assertFalse(rebuilt.has_mapping('Gone'))

    def test_payload_with_only_default_image(self):
        rebuilt = CategorySnapshot.from_payload({'defaultImage': DEFAULT_URL})
        self.assertEqual(rebuilt.fallback_image_url, DEFAULT_URL)
        self.assertEqual(rebuilt.general_fallback_url, '')
        result = resolve_appearance('Anything', rebuilt)
        self.assertEqual(result.image_url, DEFAULT_URL)
        self.assertEqual(result.image_tier, ImageTier.BUNDLED_DEFAULT)
