# file test_eulbatch/test_server.py
#
#   Copyright 2026 Emory University Libraries & IT Services
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

import os
import unittest

from mock import Mock, patch

from eulbatch.query import Query
from eulbatch.server import Site

SITE_ROOT = 'http://repo.example.com/'

BOOK_RESOURCE = {
    'type': 'node--islandora_object',
    'id': 'uuid-101',
    'attributes': {
        'drupal_internal__nid': 101,
        'title': 'Book',
        'status': True,
        'field_weight': None,
        'field_external_uri': {'uri': 'https://schema.org/Book', 'title': ''},
    },
    'relationships': {
        'field_member_of': {'data': [{
            'type': 'node--islandora_object', 'id': 'uuid-100',
            'meta': {'drupal_internal__target_id': 100}}]},
        'field_model': {'data': {
            'type': 'taxonomy_term--islandora_models', 'id': 'uuid-1',
            'meta': {'drupal_internal__target_id': 1}}},
        'field_display_hints': {'data': None},
    },
}

PAGE_TERM_RESOURCE = {
    'type': 'taxonomy_term--islandora_models',
    'id': 'uuid-2',
    'attributes': {'drupal_internal__tid': 2, 'name': 'Page'},
}


class SiteInitTest(unittest.TestCase):

    def test_init(self):
        site = Site(SITE_ROOT, 'user', 'pass')
        self.assertEqual(SITE_ROOT, site.site_root)
        self.assertEqual('user', site.username)
        self.assertEqual(3, site.retries)
        self.assertEqual('<Site %s>' % SITE_ROOT, repr(site))

        self.assertEqual(None, Site(SITE_ROOT, retries=None).retries)

    def test_environment(self):
        env = {
            'EULBATCH_SITE_ROOT': 'https://env.example.com',
            'EULBATCH_SITE_USER': 'envuser',
            'EULBATCH_SITE_PASSWORD': 'envpass',
            'EULBATCH_CONNECTION_RETRIES': '5',
        }
        with patch.dict(os.environ, env, clear=True):
            site = Site()
            self.assertEqual('https://env.example.com/', site.site_root)
            self.assertEqual('envuser', site.username)
            self.assertEqual(('envuser', 'envpass'), site.api.request_options['auth'])
            self.assertEqual(5, site.retries)

            # explicit options take precedence
            site = Site('http://other.example.com/', 'me', 'secret', retries=1)
            self.assertEqual('me', site.username)
            self.assertEqual(1, site.retries)

        with patch.dict(os.environ, {}, clear=True):
            self.assertRaises(Exception, Site)


class SiteQueryTest(unittest.TestCase):

    def setUp(self):
        self.site = Site(SITE_ROOT, 'user', 'pass')
        self.site.api = Mock()

    def test_filter_path(self):
        self.assertEqual('drupal_internal__nid', self.site.filter_path('node', 'id'))
        self.assertEqual('field_member_of.drupal_internal__nid',
                         self.site.filter_path('node', 'field_member_of'))
        self.assertEqual('field_media_use.drupal_internal__tid',
                         self.site.filter_path('media', 'field_media_use'))
        self.assertEqual('field_external_uri.uri',
                         self.site.filter_path('taxonomy_term', 'field_external_uri'))
        self.assertEqual('title', self.site.filter_path('node', 'title'))
        self.assertRaises(ValueError, self.site.filter_path, 'comment', 'id')

    def test_filter_params(self):
        query = Query('node', type='islandora_object', field_member_of='10',
                      field_weight__exists=False, field_model__in=[1, 2], status=True)
        params = self.site.filter_params(query)
        self.assertEqual({
            'filter[c0][condition][path]': 'field_member_of.drupal_internal__nid',
            'filter[c0][condition][operator]': '=',
            'filter[c0][condition][value]': '10',
            'filter[c1][condition][path]': 'field_weight',
            'filter[c1][condition][operator]': 'IS NULL',
            'filter[c2][condition][path]': 'field_model.drupal_internal__tid',
            'filter[c2][condition][operator]': 'IN',
            'filter[c2][condition][value][]': ['1', '2'],
            'filter[c3][condition][path]': 'status',
            'filter[c3][condition][operator]': '=',
            'filter[c3][condition][value]': '1',
        }, params)

    def test_collection_params(self):
        params = self.site.collection_params(Query('node').after(5), 'islandora_object', 10)
        self.assertEqual('drupal_internal__nid', params['sort'])
        self.assertEqual(10, params['page[limit]'])
        self.assertEqual('drupal_internal__nid', params['fields[node--islandora_object]'])
        self.assertEqual('>', params['filter[c0][condition][operator]'])
        self.assertEqual('5', params['filter[c0][condition][value]'])

    def test_count(self):
        self.site.api.get_collection.return_value = {'data': [], 'meta': {'count': 7}}
        self.assertEqual(7, self.site.count(Query('node')))

        # media are counted across every media bundle
        self.site.api.get_collection.reset_mock()
        self.assertEqual(7 * len(self.site.bundles['media']), self.site.count(Query('media')))
        bundles = [c[0][1] for c in self.site.api.get_collection.call_args_list]
        self.assertEqual(self.site.bundles['media'], bundles)

    def test_count_without_meta(self):
        self.site.api.get_collection.return_value = {
            'data': [{}, {}], 'links': {'next': {'href': 'http://repo.example.com/next'}}}
        self.site.api.get_next.return_value = {'data': [{}], 'links': {}}
        self.assertEqual(3, self.site.count(Query('node')))
        self.site.api.get_next.assert_called_once_with('http://repo.example.com/next')

    def test_query_page(self):
        def collection(entity_type, bundle, params):
            ids = {'file': [5, 7], 'image': [6]}[bundle]
            return {'data': [{'attributes': {'drupal_internal__mid': i}} for i in ids]}
        self.site.api.get_collection.side_effect = collection

        query = Query('media', bundle__in=['file', 'image'])
        self.assertEqual([5, 6], self.site.query_page(query, after=4, limit=2))
        entity_type, bundle, params = self.site.api.get_collection.call_args[0]
        self.assertEqual(('media', 'image'), (entity_type, bundle))
        self.assertEqual('4', params['filter[c0][condition][value]'])
        self.assertEqual('drupal_internal__mid', params['filter[c0][condition][path]'])
        self.assertEqual(2, params['page[limit]'])


class SiteRecordTest(unittest.TestCase):

    def setUp(self):
        self.site = Site(SITE_ROOT, 'user', 'pass')
        self.site.api = Mock()
        self.site.api.get_collection.return_value = {'data': [BOOK_RESOURCE]}

    def test_load(self):
        record = self.site.load('node', 101)
        self.site.api.get_collection.assert_called_once_with(
            'node', 'islandora_object', {'filter[drupal_internal__nid]': 101})
        self.assertEqual(101, record.id)
        self.assertEqual('uuid-101', record.uuid)
        self.assertEqual('islandora_object', record.bundle)
        self.assertEqual('Book', record.get('title'))
        self.assertEqual('https://schema.org/Book', record.get('field_external_uri'))
        self.assertEqual([100], record.get('field_member_of'))
        self.assertEqual(1, record.get('field_model'))
        self.assertEqual([], record.values('field_display_hints'))
        self.assertNotIn('drupal_internal__nid', record.fields)

        self.site.api.get_collection.return_value = {'data': []}
        self.assertEqual(None, self.site.load('node', 999))

    def test_save(self):
        record = self.site.load('node', 101)
        record.set('status', False)
        record.set('field_member_of', [100])
        self.site.save(record)
        self.site.api.patch_resource.assert_called_once_with(
            'node', 'islandora_object', 'uuid-101', {
                'type': 'node--islandora_object',
                'id': 'uuid-101',
                'attributes': {'status': False},
                'relationships': {'field_member_of': {'data': [
                    {'type': 'node--islandora_object', 'id': 'uuid-100'}]}},
            })
        self.assertEqual(set(), record.changed)

    def test_save_unchanged(self):
        record = self.site.load('node', 101)
        self.site.save(record)
        self.site.api.patch_resource.assert_called_once_with(
            'node', 'islandora_object', 'uuid-101',
            {'type': 'node--islandora_object', 'id': 'uuid-101'})

    def test_save_new_reference(self):
        record = self.site.load('node', 101)
        record.set('field_model', 2)
        self.site.api.get_collection.return_value = {'data': [PAGE_TERM_RESOURCE]}
        self.site.save(record)
        data = self.site.api.patch_resource.call_args[0][3]
        self.assertEqual({'field_model': {'data': {
            'type': 'taxonomy_term--islandora_models', 'id': 'uuid-2'}}},
            data['relationships'])

        record.set('field_model', 3)
        self.site.api.get_collection.return_value = {'data': []}
        self.assertRaises(ValueError, self.site.save, record)

    def test_delete(self):
        record = self.site.load('node', 101)
        record.translations = ['fr']
        self.site.remove_translation(record, 'fr')
        self.site.api.delete_resource.assert_called_with(
            'node', 'islandora_object', 'uuid-101', langcode='fr')
        self.assertEqual([], record.translations)

        self.site.delete(record)
        self.site.api.delete_resource.assert_called_with('node', 'islandora_object', 'uuid-101')
