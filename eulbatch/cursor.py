# file eulbatch/cursor.py
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

from collections import namedtuple
import logging

from eulbatch.query import Query


logger = logging.getLogger(__name__)


#: next page to fetch: records with a key greater than ``after``
#: (no lower bound when None), at most ``limit`` of them
PageRequest = namedtuple('PageRequest', ['after', 'limit'])


class CursorIterator(object):
    '''Pages through the records matching a query in ascending key order,
    resuming after the last key recorded in a
    :class:`~eulbatch.state.BatchState`.

    :param source: a :class:`~eulbatch.store.RecordStore` or
        :class:`~eulbatch.store.IdListSource`
    :param query: base :class:`~eulbatch.query.Query` to page through
    :param page_size: number of ids per page (default: 10)
    '''

    page_size = 10

    def __init__(self, source, query, page_size=None):
        self.source = source
        if query is None:
            # id lists have no conditions of their own
            query = Query(None)
        self.query = query
        if page_size is not None:
            if page_size < 1:
                raise ValueError('Page size must be at least 1')
            self.page_size = page_size

    def count(self, after=None):
        '''Count the records matching the base query, optionally only those
        with a key greater than ``after``.'''
        return self.source.count(self.query.after(after))

    def page_request(self, state):
        return PageRequest(state.last_key, self.page_size)

    def next_page(self, state):
        '''Fetch the next page of identifiers.

        On the first call for a state (no total yet) the records are
        counted first; if there are none, no page is requested.  The
        caller is responsible for advancing ``state.last_key`` to the
        largest id returned.

        :returns: tuple of list of ids and the current total
        '''
        if state.total is None:
            total = self.count()
            logger.debug('Counted %(count)d record(s) for %(query)r',
                         {'count': total, 'query': self.query})
            if not total:
                return [], 0
        else:
            total = state.total

        request = self.page_request(state)
        ids = list(self.source.query_page(self.query, after=request.after,
                                          limit=request.limit))
        return ids, total


def iter_ids(source, query, page_size=50):
    '''Generator over the ids of every record matching a query, fetched a
    page at a time.'''
    after = None
    while True:
        ids = list(source.query_page(query, after=after, limit=page_size))
        if not ids:
            return
        for record_id in ids:
            yield record_id
        after = max(ids)
        if len(ids) < page_size:
            return
