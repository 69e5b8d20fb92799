# file eulbatch/queue.py
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
Named work queues.

A queue item is created unclaimed; :meth:`QueueStore.claim` leases the
oldest claimable item to a single consumer, which either acknowledges it
with :meth:`QueueStore.ack_delete` once it has been processed or hands it
back with :meth:`QueueStore.release`.  An item that is neither stays
claimed until its lease expires, so a failing item is not retried within
the same run.

:class:`MemoryQueueStore` lives only as long as the process;
:class:`SqliteQueueStore` keeps queues in a SQLite database file, so
queues can be drained across separate invocations.
"""

from collections import namedtuple
from contextlib import contextmanager
import copy
import itertools
import json
import logging
import sqlite3
import time


logger = logging.getLogger(__name__)

#: a claimed queue item: an opaque handle for acknowledging or releasing
#: it, the name of its queue and the payload it was created with
QueueItem = namedtuple('QueueItem', ['handle', 'name', 'payload'])

#: seconds a claimed item stays leased to its consumer
DEFAULT_LEASE_TIME = 3600


class QueueStore(object):
    '''Interface for a store of named queues.'''

    def create_queue(self, name):
        raise NotImplementedError

    def delete_queue(self, name):
        'Delete a queue with all of its items.'
        raise NotImplementedError

    def enqueue(self, name, payload):
        '''Add an item to a queue.

        :returns: handle of the new item
        '''
        raise NotImplementedError

    def claim(self, name, lease_time=DEFAULT_LEASE_TIME):
        '''Claim the oldest claimable item in a queue.

        :returns: :class:`QueueItem`, or None when there is nothing to claim
        '''
        raise NotImplementedError

    def ack_delete(self, item):
        'Delete a processed item.'
        raise NotImplementedError

    def release(self, item):
        'Make a claimed item claimable again.'
        raise NotImplementedError

    def count(self, name):
        '''Number of claimable items in a queue.  Items that are currently
        claimed are not counted.'''
        raise NotImplementedError


class MemoryQueueStore(QueueStore):
    '''Queue store held in memory.  Payloads are copied on the way in and
    out, as they would be by a store that serializes them.'''

    def __init__(self):
        self._queues = {}
        self._handles = itertools.count(1)

    def create_queue(self, name):
        self._queues.setdefault(name, [])

    def delete_queue(self, name):
        self._queues.pop(name, None)

    def queue_names(self):
        return sorted(self._queues)

    def enqueue(self, name, payload):
        if name not in self._queues:
            raise KeyError("Queue '%s' does not exist" % name)
        handle = next(self._handles)
        # items are [handle, payload, lease expiry]
        self._queues[name].append([handle, copy.deepcopy(payload), 0])
        return handle

    def _claimable(self, name, now):
        return [item for item in self._queues.get(name, []) if item[2] <= now]

    def claim(self, name, lease_time=DEFAULT_LEASE_TIME):
        now = time.time()
        claimable = self._claimable(name, now)
        if not claimable:
            return None
        item = claimable[0]
        item[2] = now + lease_time
        return QueueItem(item[0], name, copy.deepcopy(item[1]))

    def ack_delete(self, item):
        items = self._queues.get(item.name, [])
        self._queues[item.name] = [i for i in items if i[0] != item.handle]

    def release(self, item):
        for i in self._queues.get(item.name, []):
            if i[0] == item.handle:
                i[2] = 0

    def count(self, name):
        return len(self._claimable(name, time.time()))


class SqliteQueueStore(QueueStore):
    '''Queue store backed by a SQLite database.

    :param path: path to the database file; created if it does not exist
    '''

    schema = [
        '''CREATE TABLE IF NOT EXISTS queues (
            name TEXT PRIMARY KEY,
            created REAL NOT NULL
        )''',
        '''CREATE TABLE IF NOT EXISTS queue_items (
            item_id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            payload TEXT NOT NULL,
            created REAL NOT NULL,
            expire REAL NOT NULL DEFAULT 0
        )''',
        'CREATE INDEX IF NOT EXISTS queue_items_name ON queue_items (name, expire)',
    ]

    def __init__(self, path):
        self.path = path
        # autocommit; multi-statement changes use _transaction
        self.conn = sqlite3.connect(path, timeout=30.0, isolation_level=None)
        for statement in self.schema:
            self.conn.execute(statement)

    def close(self):
        self.conn.close()

    @contextmanager
    def _transaction(self):
        self.conn.execute('BEGIN IMMEDIATE')
        try:
            yield self.conn
        except Exception:
            self.conn.execute('ROLLBACK')
            raise
        self.conn.execute('COMMIT')

    def create_queue(self, name):
        self.conn.execute('INSERT OR IGNORE INTO queues (name, created) VALUES (?, ?)',
                          (name, time.time()))

    def delete_queue(self, name):
        with self._transaction() as conn:
            conn.execute('DELETE FROM queue_items WHERE name = ?', (name,))
            conn.execute('DELETE FROM queues WHERE name = ?', (name,))

    def queue_names(self):
        return [row[0] for row in self.conn.execute('SELECT name FROM queues ORDER BY name')]

    def enqueue(self, name, payload):
        with self._transaction() as conn:
            if conn.execute('SELECT 1 FROM queues WHERE name = ?', (name,)).fetchone() is None:
                raise KeyError("Queue '%s' does not exist" % name)
            cursor = conn.execute(
                'INSERT INTO queue_items (name, payload, created) VALUES (?, ?, ?)',
                (name, json.dumps(payload), time.time()))
            return cursor.lastrowid

    def claim(self, name, lease_time=DEFAULT_LEASE_TIME):
        now = time.time()
        rows = self.conn.execute(
            '''
            UPDATE queue_items
            SET expire = ?
            WHERE item_id = (
                SELECT item_id
                FROM queue_items
                WHERE name = ? AND expire <= ?
                ORDER BY item_id
                LIMIT 1
            )
            RETURNING item_id, payload
            ''',
            (now + lease_time, name, now)).fetchall()
        if not rows:
            return None
        row = rows[0]
        return QueueItem(row[0], name, json.loads(row[1]))

    def ack_delete(self, item):
        self.conn.execute('DELETE FROM queue_items WHERE item_id = ?', (item.handle,))

    def release(self, item):
        self.conn.execute('UPDATE queue_items SET expire = 0 WHERE item_id = ?', (item.handle,))

    def count(self, name):
        return self.conn.execute(
            'SELECT COUNT(*) FROM queue_items WHERE name = ? AND expire <= ?',
            (name, time.time())).fetchone()[0]
