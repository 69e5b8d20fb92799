# file eulbatch/driver.py
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
Batch drivers run a batch one invocation at a time.

Each call to :meth:`BatchDriver.step` processes a single page of records
and records everything needed to continue in the
:class:`~eulbatch.state.BatchState` it is handed, so a batch can be
stopped after any invocation and resumed later from a saved state.
Errors for individual records are isolated by the item processor; errors
from the cursor or the store itself are not caught here and end the
batch.
"""

import logging
import time

from eulbatch.state import BatchState, ACTIVE, UNINITIALIZED, FAILED


logger = logging.getLogger(__name__)


class BatchDriver(object):
    '''Drive an item processor over the ids produced by a cursor.

    :param cursor: :class:`~eulbatch.cursor.CursorIterator`
    :param processor: :class:`~eulbatch.processors.ItemProcessor`
    :param audit: optional :class:`~eulbatch.util.AuditLog`
    '''

    def __init__(self, cursor, processor, audit=None):
        self.cursor = cursor
        self.processor = processor
        self.audit = audit

    def step(self, state):
        '''Process the next page of records, updating ``state``.'''
        if state.status == UNINITIALIZED:
            state.total = self.cursor.count()
            state.status = ACTIVE
            if not state.total:
                state.exhaust('Batch empty.')
                logger.info('Batch empty.')
                return state

        ids, total = self.cursor.next_page(state)
        if not ids:
            state.exhaust()
            return state

        for record_id in ids:
            state.message = self.processor.describe(record_id)
            result = self.processor.run(record_id, state)
            state.record(result)
            state.advance(record_id)
            if self.audit is not None:
                self.audit.record(result)

        state.update_progress(self.cursor.count(after=state.last_key))
        logger.debug('Processed %(completed)d of %(total)d.',
                     {'completed': state.completed, 'total': state.total})
        return state

    def run(self, state=None):
        'Step through the whole batch.'
        if state is None:
            state = BatchState()
        while not state.is_finished:
            self.step(state)
        return state


class QueueDriver(object):
    '''Drive an operation over the items of a named queue.  Successfully
    processed items are deleted from the queue; failed items are left
    claimed.  Exceptions raised by the operation are not caught: the item
    is released and the exception ends the batch.

    :param queues: :class:`~eulbatch.queue.QueueStore`
    :param name: name of the queue to drain
    :param operation: callable taking a queue item payload and the batch
        state, returning an :class:`~eulbatch.processors.ItemResult`
    :param audit: optional :class:`~eulbatch.util.AuditLog`
    :param items_per_step: maximum number of items to process in a single
        invocation (default: 1)
    :param time_per_step: optional time limit in seconds for a single
        invocation; checked between items
    '''

    def __init__(self, queues, name, operation, audit=None, items_per_step=1,
                 time_per_step=None):
        self.queues = queues
        self.name = name
        self.operation = operation
        self.audit = audit
        self.items_per_step = items_per_step
        self.time_per_step = time_per_step

    def process_item(self, item, state):
        try:
            result = self.operation(item.payload, state)
        except BaseException:
            # errors outside the item processor end the batch; hand the
            # item back so it is claimed again when the batch resumes
            self.queues.release(item)
            raise

        if result.status == FAILED:
            logger.warning('Failed to process %(id)s; leaving it claimed in %(queue)s.',
                           {'id': result.id, 'queue': self.name})
        else:
            self.queues.ack_delete(item)
        return result

    def step(self, state):
        if state.status == UNINITIALIZED:
            state.status = ACTIVE
            logger.debug('Starting batch of %(count)d items.',
                         {'count': self.queues.count(self.name)})

        start = time.time()
        processed = 0
        while processed < self.items_per_step:
            if self.time_per_step is not None and processed and \
                    time.time() - start >= self.time_per_step:
                break
            item = self.queues.claim(self.name)
            if item is None:
                break
            state.message = 'Processing %s from %s' % (item.payload.get('id'), self.name)
            result = self.process_item(item, state)
            state.record(result)
            processed += 1
            if self.audit is not None:
                self.audit.record(result)

        state.update_progress(self.queues.count(self.name))
        if state.is_finished:
            logger.debug('Queue exhausted after processing %(count)d items.',
                         {'count': state.completed})
        return state

    def run(self, state=None):
        if state is None:
            state = BatchState()
        while not state.is_finished:
            self.step(state)
        return state
