# file eulbatch/batch.py
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
Running batches to completion.

A :class:`Batch` is a titled list of operations run one after the other.
An operation is anything with a ``step(state)`` method that advances a
:class:`~eulbatch.state.BatchState` by one invocation, such as
:class:`~eulbatch.driver.BatchDriver` or
:class:`~eulbatch.driver.QueueDriver`.  :class:`BatchRunner` calls each
operation until its state is exhausted, reporting progress after every
invocation and optionally checkpointing to a state file so that an
interrupted run can be picked up again.
"""

import json
import logging
import os
import time

from eulbatch.driver import QueueDriver
from eulbatch.state import BatchState


logger = logging.getLogger(__name__)


class Batch(object):
    '''A titled sequence of batch operations.

    :param title: title for progress display
    :param operations: list of objects with a ``step(state)`` method
    :param finished: optional callback, called with the list of final
        states once every operation is done
    :param start: optional callback, called before the first operation
        of a new run but not when a run is resumed from a checkpoint
    :param context: optional json serializable dict saved with every
        checkpoint, for settings a resumed run must reuse (see
        :meth:`BatchRunner.saved_context`)
    '''

    def __init__(self, title, operations, finished=None, start=None, context=None):
        self.title = title
        self.operations = list(operations)
        self.finished = finished
        self.start = start
        self.context = context or {}

    def __repr__(self):
        return '<Batch %s (%d operations)>' % (self.title, len(self.operations))


class BatchRunner(object):
    '''Run batches to completion.

    :param progress: optional :class:`~eulbatch.progress.ProgressSink`
    :param state_path: optional path of a json file to checkpoint to after
        every invocation; when the file exists, the batch resumes from it
    '''

    def __init__(self, progress=None, state_path=None):
        self.progress = progress
        self.state_path = state_path

    def has_checkpoint(self):
        return self.state_path is not None and os.path.exists(self.state_path)

    def saved_context(self):
        '''The batch context stored with the current checkpoint, or None
        when there is nothing to resume.'''
        if not self.has_checkpoint():
            return None
        with open(self.state_path) as statefile:
            return json.load(statefile).get('context', {})

    def load_checkpoint(self):
        with open(self.state_path) as statefile:
            data = json.load(statefile)
        states = [BatchState.from_dict(s) for s in data.get('completed', [])]
        return data['operation'], BatchState.from_dict(data['state']), states

    def checkpoint(self, batch, index, state, states):
        tmp_path = '%s.tmp' % self.state_path
        with open(tmp_path, 'w') as statefile:
            json.dump({
                'operation': index,
                'state': state.to_dict(),
                'completed': [s.to_dict() for s in states],
                'context': batch.context,
            }, statefile)
        os.replace(tmp_path, self.state_path)

    def report(self, batch, index, state):
        if self.progress is None:
            return
        fraction = (index + state.finished) / float(len(batch.operations))
        self.progress.report(fraction, state.message)

    def process(self, batch):
        '''Run every operation of a batch until it is exhausted.

        :returns: list of the final :class:`~eulbatch.state.BatchState`
            of each operation
        '''
        index, state, states = 0, BatchState(), []
        if self.has_checkpoint():
            index, state, states = self.load_checkpoint()
            logger.info('Resuming %(title)s at operation %(index)d: %(state)r',
                        {'title': batch.title, 'index': index + 1, 'state': state})
        elif batch.start is not None:
            batch.start()

        logger.debug('Starting %(title)s.', {'title': batch.title})
        for i in range(index, len(batch.operations)):
            operation = batch.operations[i]
            while not state.is_finished:
                operation.step(state)
                self.report(batch, i, state)
                if self.state_path is not None:
                    self.checkpoint(batch, i, state, states)
            states.append(state)
            state = BatchState()

        if self.has_checkpoint():
            os.remove(self.state_path)
        if self.progress is not None:
            self.progress.finish()
        if batch.finished is not None:
            batch.finished(states)
        return states


class QueueRunner(object):
    '''Drain an existing named queue with an item processor, in
    invocations bounded by an item count and a time limit.  Each queue
    item payload must hold the ``id`` of the record to process.

    :param queues: :class:`~eulbatch.queue.QueueStore`
    :param processor: :class:`~eulbatch.processors.ItemProcessor`
    :param items_per_iteration: maximum number of items per invocation
    :param time_per_iteration: time limit in seconds per invocation
    :param progress: optional :class:`~eulbatch.progress.ProgressSink`
    '''

    def __init__(self, queues, processor, items_per_iteration=100,
                 time_per_iteration=300, progress=None):
        self.queues = queues
        self.processor = processor
        self.items_per_iteration = items_per_iteration
        self.time_per_iteration = time_per_iteration
        self.progress = progress

    def operation(self, payload, state):
        return self.processor.run(payload['id'], state)

    def run(self, name, audit=None):
        '''Process items from the named queue until none can be claimed.

        :returns: :class:`~eulbatch.state.BatchState` with the combined
            counts of every invocation
        '''
        totals = BatchState()
        driver = QueueDriver(self.queues, name, self.operation, audit=audit,
                             items_per_step=self.items_per_iteration,
                             time_per_step=self.time_per_iteration)
        iteration = 0
        while self.queues.count(name) > 0:
            iteration += 1
            start = time.time()
            state = driver.step(BatchState())
            totals.merge(state)
            remaining = self.queues.count(name)
            logger.info('Iteration %(iteration)d processed %(count)d item(s) from %(name)s '
                        'in %(time)0.2fs; %(remaining)d remaining.',
                        {'iteration': iteration, 'count': state.completed, 'name': name,
                         'time': time.time() - start, 'remaining': remaining})
            if self.progress is not None:
                self.progress.report(float(totals.completed) / (totals.completed + remaining),
                                     state.message)

        totals.exhaust()
        if self.progress is not None:
            self.progress.finish()
        return totals
