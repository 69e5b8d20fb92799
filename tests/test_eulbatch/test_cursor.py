# file test_eulbatch/test_cursor.py
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

from mock import Mock

from eulbatch.cursor import CursorIterator, PageRequest, iter_ids
from eulbatch.query import Query
from eulbatch.state import BatchState
from eulbatch.store import IdListSource

from tests.test_eulbatch.base import numbered_store


def drain(cursor):
    'Page through a cursor the way a driver does, returning every id seen.'
    state = BatchState()
    seen = []
    while True:
        ids, total = cursor.next_page(state)
        if not ids:
            return seen
        state.total = total
        seen.extend(ids)
        for record_id in ids:
            state.advance(record_id)


class CursorIteratorTest(unittest.TestCase):

    def test_every_page_size(self):
        store = numbered_store(20)
        expected = list(range(1, 21))
        for page_size in range(1, 22):
            cursor = CursorIterator(store, Query('node'), page_size)
            self.assertEqual(expected, drain(cursor),
                             'page size %d should visit every record once' % page_size)

    def test_page_boundaries(self):
        store = numbered_store(20)
        cursor = CursorIterator(store, Query('node'))
        self.assertEqual(10, cursor.page_size)
        state = BatchState()

        ids, total = cursor.next_page(state)
        self.assertEqual(list(range(1, 11)), ids)
        self.assertEqual(20, total)
        state.total = total
        state.advance(max(ids))
        self.assertEqual(PageRequest(10, 10), cursor.page_request(state))

        ids, total = cursor.next_page(state)
        self.assertEqual(list(range(11, 21)), ids)
        state.advance(max(ids))
        self.assertEqual(20, state.last_key)

        ids, total = cursor.next_page(state)
        self.assertEqual([], ids)

    def test_empty_source(self):
        source = Mock()
        source.count.return_value = 0
        cursor = CursorIterator(source, Query('node'))
        self.assertEqual(([], 0), cursor.next_page(BatchState()))
        source.query_page.assert_not_called()

    def test_count_after(self):
        cursor = CursorIterator(numbered_store(20), Query('node'))
        self.assertEqual(20, cursor.count())
        self.assertEqual(5, cursor.count(after=15))

    def test_invalid_page_size(self):
        self.assertRaises(ValueError, CursorIterator, numbered_store(1), Query('node'), 0)

    def test_id_list(self):
        cursor = CursorIterator(IdListSource(['3', '1', '2']), None, 2)
        self.assertEqual([1, 2, 3], drain(cursor))


class IterIdsTest(unittest.TestCase):

    def test_iter_ids(self):
        store = numbered_store(7)
        self.assertEqual(list(range(1, 8)), list(iter_ids(store, Query('node'), page_size=3)))
        self.assertEqual([], list(iter_ids(store, Query('media'))))
