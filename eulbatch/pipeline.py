# file eulbatch/pipeline.py
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

import logging
import uuid

from eulbatch.batch import Batch
from eulbatch.cursor import iter_ids
from eulbatch.driver import QueueDriver
from eulbatch.processors import ItemResult, MEMBER_OF_FIELD
from eulbatch.query import Query
from eulbatch.state import PROCESSED, SKIPPED


logger = logging.getLogger(__name__)


class RecursiveDeleter(object):
    '''Delete records together with everything below them in the
    membership hierarchy.

    Deletion runs as two queue-backed batch operations: a breadth-first
    traversal that discovers descendants through the member field and
    fills a deletion queue, followed by deletion of every queued record
    with a :class:`~eulbatch.processors.DeleteRecordProcessor`.  Both
    queues are specific to a single deleter.

    :param store: :class:`~eulbatch.store.RecordStore`
    :param queues: :class:`~eulbatch.queue.QueueStore`
    :param processor: item processor used for deletion
    :param prefix: queue name prefix; defaults to a random one
    :param member_field: field linking a record to its parent
    :param guard_cycles: traverse each record at most once; without this,
        membership cycles are traversed forever
    '''

    title = 'Discovering and deleting recursively'

    def __init__(self, store, queues, processor, prefix=None,
                 member_field=MEMBER_OF_FIELD, guard_cycles=True,
                 entity_type='node', page_size=50):
        self.store = store
        self.queues = queues
        self.processor = processor
        if prefix is None:
            prefix = 'eulbatch.deleter.%s' % uuid.uuid4().hex[:8]
        self.prefix = prefix
        self.member_field = member_field
        self.guard_cycles = guard_cycles
        self.entity_type = entity_type
        self.page_size = page_size

    @property
    def traversal_queue(self):
        return '%s.traversal' % self.prefix

    @property
    def deletion_queue(self):
        return '%s.deletion' % self.prefix

    def provision(self):
        self.queues.create_queue(self.traversal_queue)
        self.queues.create_queue(self.deletion_queue)

    def cleanup(self):
        self.queues.delete_queue(self.traversal_queue)
        self.queues.delete_queue(self.deletion_queue)

    def enqueue_traversal(self, id, delete=True):
        handle = self.queues.enqueue(self.traversal_queue, {'id': id, 'delete': delete})
        logger.debug('Enqueued traversal of %(id)s, to delete: %(delete)s',
                     {'id': id, 'delete': 'true' if delete else 'false'})
        return handle

    def enqueue_deletion(self, id):
        handle = self.queues.enqueue(self.deletion_queue, {'id': id})
        logger.debug('Enqueued deletion of %(id)s.', {'id': id})
        return handle

    def seed(self, ids, empty=False):
        '''Queue the records to start from.

        :param ids: ids of the records to delete
        :param empty: keep the given records and only delete their
            descendants
        '''
        for id in ids:
            self.enqueue_traversal(id, not empty)

    def children(self, id):
        query = Query(self.entity_type, **{self.member_field: id})
        return iter_ids(self.store, query, page_size=self.page_size)

    def traverse(self, entry, state):
        '''Traversal operation: queue the direct children of a record for
        traversal, and the record itself for deletion if requested.'''
        id = entry['id']
        if self.guard_cycles:
            # keys are strings so the state stays json serializable
            seen = state.data.setdefault('seen', {})
            if str(id) in seen:
                logger.debug('Already traversed %(id)s; skipping.', {'id': id})
                return ItemResult(id, SKIPPED, ('Already traversed.',))

        logger.debug('Traversing %(id)s.', {'id': id})
        for child in self.children(id):
            self.enqueue_traversal(child)
        if entry.get('delete', True):
            self.enqueue_deletion(id)
        if self.guard_cycles:
            # only once every child is queued, so a failed traversal is retried
            seen[str(id)] = True
        return ItemResult(id, PROCESSED, ())

    def delete(self, entry, state):
        'Deletion operation: delete a single record.'
        return self.processor.run(entry['id'], state)

    def traversal_driver(self, audit=None):
        return QueueDriver(self.queues, self.traversal_queue, self.traverse, audit=audit)

    def deletion_driver(self, audit=None):
        return QueueDriver(self.queues, self.deletion_queue, self.delete, audit=audit)

    def batch(self, ids, empty=False, audit=None):
        '''The :class:`~eulbatch.batch.Batch` that deletes ``ids``.

        The queues are set up and seeded when a new run starts and removed
        when the batch finishes.  The queue prefix is kept in the batch
        context, so a run resumed from a checkpoint can construct its
        deleter with the same ``prefix`` and carry on with the queues of
        the interrupted run.'''
        def start():
            self.provision()
            self.seed(ids, empty)

        return Batch(self.title,
                     [self.traversal_driver(), self.deletion_driver(audit)],
                     finished=self.finished, start=start,
                     context={'prefix': self.prefix})

    def finished(self, states):
        logger.debug('Finished batch execution.')
        self.cleanup()
