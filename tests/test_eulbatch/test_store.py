# file test_eulbatch/test_store.py
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

import unittest

from eulbatch.models import Record
from eulbatch.query import Query
from eulbatch.store import MemoryRecordStore, IdListSource

from tests.test_eulbatch.base import repository_store


class RecordTest(unittest.TestCase):

    def test_values(self):
        record = Record('node', 5, 'islandora_object',
                        fields={'field_member_of': [1, None, 2], 'field_model': 3,
                                'field_weight': None})
        self.assertEqual([5], record.values('id'))
        self.assertEqual(['islandora_object'], record.values('type'))
        self.assertEqual([1, 2], record.values('field_member_of'))
        self.assertEqual([3], record.values('field_model'))
        self.assertEqual([], record.values('field_weight'))
        self.assertEqual([], record.values('field_missing'))
        self.assertEqual(1, record.first('field_member_of'))

    def test_set(self):
        record = Record('node', 5)
        record.set('status', False)
        self.assertEqual(False, record.get('status'))
        self.assertEqual(set(['status']), record.changed)


class MemoryRecordStoreTest(unittest.TestCase):

    def setUp(self):
        self.store = repository_store(MemoryRecordStore)

    def test_load(self):
        node = self.store.load('node', '101')
        self.assertEqual(101, node.id, 'numeric string ids should load')
        self.assertEqual(['fr'], node.translations)
        self.assertEqual(None, self.store.load('node', 999))
        self.assertEqual(None, self.store.load('thing', 1))

        # loaded records are copies
        node.set('title', 'Changed')
        self.assertEqual('Book', self.store.load('node', 101).get('title'))
        self.store.save(node)
        self.assertEqual('Changed', self.store.load('node', 101).get('title'))
        self.assertEqual(set(), node.changed, 'save should clear changed fields')

    def test_query(self):
        query = Query('node', type='islandora_object')
        self.assertEqual(5, self.store.count(query))
        self.assertEqual([100, 101], self.store.query_page(query, limit=2))
        self.assertEqual([102, 103, 110], self.store.query_page(query, after=101, limit=10))
        self.assertEqual([], self.store.query_page(query, after=110))
        self.assertEqual([102, 103], self.store.query_page(Query('node', field_member_of=101)))
        self.assertEqual([200, 202], self.store.query_page(Query('media', field_media_use__in=[10])))

    def test_delete(self):
        media = self.store.load('media', 200)
        self.store.delete(media)
        self.assertFalse(self.store.exists('media', 200))
        self.assertEqual(2, len(self.store.records('media')))

    def test_remove_translation(self):
        node = self.store.load('node', 101)
        self.store.remove_translation(node, 'fr')
        self.assertEqual([], node.translations)
        self.assertEqual([], self.store.load('node', 101).translations)

    def test_transaction_rollback(self):
        before = self.store.snapshot()
        with self.assertRaises(RuntimeError):
            with self.store.transaction():
                self.store.delete(self.store.load('media', 200))
                node = self.store.load('node', 101)
                node.set('status', False)
                self.store.save(node)
                raise RuntimeError('interrupted')
        self.assertEqual(before, self.store.snapshot())

    def test_transaction_commit(self):
        with self.store.transaction():
            self.store.delete(self.store.load('media', 200))
        self.assertFalse(self.store.exists('media', 200))

    def test_nested_transaction(self):
        before = self.store.snapshot()
        with self.assertRaises(RuntimeError):
            with self.store.transaction():
                self.store.delete(self.store.load('media', 200))
                with self.store.transaction():
                    self.store.delete(self.store.load('media', 201))
                raise RuntimeError('interrupted')
        self.assertEqual(before, self.store.snapshot())


class IdListSourceTest(unittest.TestCase):

    def test_ids(self):
        source = IdListSource(['10', '2', '33', '2'])
        self.assertEqual([2, 10, 33], source.ids,
                         'ids should be unique and sorted numerically')
        self.assertEqual(3, len(source))
        self.assertEqual(3, source.count(source.query()))

    def test_query_page(self):
        source = IdListSource(['10', '2', '33', '5'])
        self.assertEqual([2, 5], source.query_page(source.query(), limit=2))
        self.assertEqual([10, 33], source.query_page(source.query(), after=5, limit=2))
        self.assertEqual(1, source.count(source.query().after(10)))
        self.assertEqual([], source.query_page(None, after=33))
