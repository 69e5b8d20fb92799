# file eulbatch/store.py
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

"""
Record stores: the persistence layer batches run against.

Every store implements the small :class:`RecordStore` interface.  Batches
only ever see that interface, so the same processors run against the
live site (:class:`eulbatch.server.Site`) or an in-memory copy
(:class:`MemoryRecordStore`, used for testing and dry runs of scripts).

:class:`IdListSource` is a minimal page source over a fixed list of
identifiers, for batches that process ids given on the command line.
"""

from contextlib import contextmanager
import copy
import logging

from eulbatch.models import Record
from eulbatch.query import Query
from eulbatch.util import normalize_id


logger = logging.getLogger(__name__)


class RecordStore(object):
    '''Interface for a store of records.'''

    def count(self, query):
        '''Number of records matching a :class:`~eulbatch.query.Query`.'''
        raise NotImplementedError

    def query_page(self, query, after=None, limit=10):
        '''Identifiers of records matching the query with a sort key greater
        than ``after``, in ascending order, at most ``limit`` of them.'''
        raise NotImplementedError

    def load(self, entity_type, id):
        '''Load a single :class:`~eulbatch.models.Record`; returns None if
        there is no such record.'''
        raise NotImplementedError

    def save(self, record):
        raise NotImplementedError

    def delete(self, record):
        raise NotImplementedError

    def remove_translation(self, record, langcode):
        raise NotImplementedError

    @contextmanager
    def transaction(self):
        '''Scope a unit of work.  Stores that support it roll back every
        change made inside the block when the block raises; the exception
        is always re-raised.  The default is a no-op.'''
        yield self


class MemoryRecordStore(RecordStore):
    '''Record store held entirely in memory.

    Loaded records are copies; changes are only visible to other readers
    after :meth:`save`.  :meth:`transaction` snapshots the store and
    restores the snapshot if the block raises, so nested transactions
    behave like savepoints.

    :param records: optional initial list of :class:`~eulbatch.models.Record`
    '''

    def __init__(self, records=None):
        self._records = {}
        for record in records or []:
            self.add(record)

    def add(self, record):
        'Add (or replace) a record without going through :meth:`save`.'
        self._records.setdefault(record.entity_type, {})[record.id] = copy.deepcopy(record)
        return record

    def create(self, entity_type, id, bundle=None, **fields):
        'Convenience method to add a new record built from keyword fields.'
        return self.add(Record(entity_type, id, bundle=bundle, fields=fields))

    def snapshot(self):
        'Deep copy of the current store contents, for comparisons.'
        return copy.deepcopy(self._records)

    def records(self, entity_type):
        return list(self._records.get(entity_type, {}).values())

    def exists(self, entity_type, id):
        return normalize_id(id) in self._records.get(entity_type, {})

    def _matching(self, query):
        return [record for record in self._records.get(query.entity_type, {}).values()
                if query.matches(record)]

    def count(self, query):
        return len(self._matching(query))

    def query_page(self, query, after=None, limit=10):
        key = query.sort_key
        matches = sorted(self._matching(query.after(after)),
                         key=lambda record: record.first(key))
        return [record.id for record in matches[:limit]]

    def load(self, entity_type, id):
        record = self._records.get(entity_type, {}).get(normalize_id(id))
        if record is None:
            return None
        return copy.deepcopy(record)

    def save(self, record):
        record.changed.clear()
        self._records.setdefault(record.entity_type, {})[record.id] = copy.deepcopy(record)
        return True

    def delete(self, record):
        self._records.get(record.entity_type, {}).pop(record.id, None)
        return True

    def remove_translation(self, record, langcode):
        if langcode in record.translations:
            record.translations.remove(langcode)
        stored = self._records.get(record.entity_type, {}).get(record.id)
        if stored is not None and langcode in stored.translations:
            stored.translations.remove(langcode)
        return True

    @contextmanager
    def transaction(self):
        snapshot = copy.deepcopy(self._records)
        try:
            yield self
        except Exception:
            logger.debug('Rolling back in-memory transaction')
            self._records = snapshot
            raise


class IdListSource(object):
    '''Page source over a fixed list of identifiers, implementing the
    :meth:`RecordStore.count` and :meth:`RecordStore.query_page` half of
    the store interface.  Duplicates are dropped and numeric ids sorted
    numerically.

    Only conditions on the id are honored, which is all a cursor adds.
    '''

    def __init__(self, ids):
        self.ids = sorted(set(normalize_id(i) for i in ids))

    def __len__(self):
        return len(self.ids)

    def query(self):
        'Base query to page through the list with.'
        return Query(None)

    def _matching(self, query):
        if query is None:
            return list(self.ids)
        return [i for i in self.ids if query.matches(Record(None, i))]

    def count(self, query):
        return len(self._matching(query))

    def query_page(self, query, after=None, limit=10):
        if query is None:
            query = self.query()
        return self._matching(query.after(after))[:limit]
