# file test_eulbatch/test_driver.py
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

import json
import sqlite3
import unittest

from mock import Mock

from eulbatch.cursor import CursorIterator
from eulbatch.driver import BatchDriver, QueueDriver
from eulbatch.processors import ItemResult, UpdateWeightProcessor
from eulbatch.query import Query
from eulbatch.queue import MemoryQueueStore
from eulbatch.state import BatchState, ACTIVE, EXHAUSTED, PROCESSED, FAILED

from tests.test_eulbatch.base import numbered_store, RecordingProcessor


class BatchDriverTest(unittest.TestCase):

    def setUp(self):
        self.store = numbered_store(25)
        self.processor = RecordingProcessor(self.store)

    def driver(self, processor=None, **kwargs):
        cursor = CursorIterator(self.store, Query('node'), 10)
        return BatchDriver(cursor, processor or self.processor, **kwargs)

    def test_steps(self):
        driver = self.driver()
        state = BatchState()

        driver.step(state)
        self.assertEqual(ACTIVE, state.status)
        self.assertEqual(25, state.total)
        self.assertEqual(10, state.last_key)
        self.assertAlmostEqual(0.4, state.finished)
        self.assertEqual('Process node 10', state.message)

        driver.step(state)
        self.assertAlmostEqual(0.8, state.finished)
        driver.step(state)
        self.assertEqual(EXHAUSTED, state.status)
        self.assertEqual(1.0, state.finished)
        self.assertEqual(25, state.completed)
        self.assertEqual(list(range(1, 26)), self.processor.seen)

    def test_empty(self):
        self.store = numbered_store(0)
        state = self.driver().step(BatchState())
        self.assertTrue(state.is_finished)
        self.assertEqual('Batch empty.', state.message)
        self.assertEqual(0, state.completed)
        self.assertEqual([], self.processor.seen)

    def test_failure_isolated(self):
        processor = RecordingProcessor(self.store, fail=[3, 17])
        with self.assertLogs('eulbatch.processors', level='ERROR'):
            state = self.driver(processor).run()
        self.assertTrue(state.is_finished)
        self.assertEqual(25, state.completed)
        self.assertEqual(2, state.failed)
        self.assertEqual(23, state.succeeded)

    def test_resume(self):
        state = BatchState()
        self.driver().step(state)
        saved = json.loads(json.dumps(state.to_dict()))

        processor = RecordingProcessor(self.store)
        resumed = self.driver(processor).run(BatchState.from_dict(saved))
        self.assertEqual(list(range(11, 26)), processor.seen,
                         'a resumed batch should pick up after the last key')
        self.assertEqual(25, resumed.completed)

        # running a finished batch again does nothing
        processor = RecordingProcessor(self.store)
        self.driver(processor).run(resumed)
        self.assertEqual([], processor.seen)

    def test_rerun_after_success(self):
        # a filter that excludes processed records makes a second run a no-op
        query = Query('node', field_weight__notexists=True)
        processor = UpdateWeightProcessor(self.store, starting_weight=1)
        state = BatchDriver(CursorIterator(self.store, query, 10), processor).run()
        self.assertEqual(25, state.succeeded)
        saves = len(self.store.calls)

        with self.assertLogs('eulbatch.driver', level='INFO') as logs:
            state = BatchDriver(CursorIterator(self.store, query, 10), processor).run(BatchState())
        self.assertEqual(0, state.completed)
        self.assertEqual('Batch empty.', state.message)
        self.assertIn('Batch empty.', logs.output[0])
        self.assertEqual(saves, len(self.store.calls), 'nothing should be changed again')

    def test_live_total(self):
        driver = self.driver()
        state = BatchState()
        driver.step(state)
        for i in range(26, 31):
            self.store.create('node', i, 'islandora_object')
        driver.step(state)
        self.assertEqual(30, state.total)
        self.assertAlmostEqual(20.0 / 30, state.finished)
        driver.run(state)
        self.assertEqual(30, state.completed)

    def test_store_error(self):
        source = Mock()
        source.count.side_effect = sqlite3.OperationalError('database is locked')
        driver = BatchDriver(CursorIterator(source, Query('node')), self.processor)
        self.assertRaises(sqlite3.Error, driver.step, BatchState())

    def test_audit(self):
        audit = Mock()
        self.driver(audit=audit).run()
        self.assertEqual(25, audit.record.call_count)
        audit.record.assert_any_call(ItemResult(25, PROCESSED, ()))


class QueueDriverTest(unittest.TestCase):

    def setUp(self):
        self.queues = MemoryQueueStore()
        self.queues.create_queue('test')
        for i in range(1, 4):
            self.queues.enqueue('test', {'id': i})
        self.seen = []

    def operation(self, payload, state):
        self.seen.append(payload['id'])
        if payload['id'] == 2:
            return ItemResult(payload['id'], FAILED, ('bad',))
        return ItemResult(payload['id'], PROCESSED, ())

    def test_step(self):
        driver = QueueDriver(self.queues, 'test', self.operation)
        state = BatchState()
        driver.step(state)
        self.assertEqual([1], self.seen)
        self.assertEqual(3, state.total)
        self.assertAlmostEqual(1.0 / 3, state.finished)
        self.assertEqual('Processing 1 from test', state.message)

    def test_failed_left_claimed(self):
        driver = QueueDriver(self.queues, 'test', self.operation, items_per_step=10)
        with self.assertLogs('eulbatch.driver', level='WARNING'):
            state = driver.run()
        self.assertTrue(state.is_finished)
        self.assertEqual([1, 2, 3], self.seen)
        self.assertEqual(1, state.failed)
        self.assertEqual(2, state.succeeded)
        # the failed item is still in the queue, but claimed
        self.assertEqual(0, self.queues.count('test'))
        self.assertEqual(1, len(self.queues._queues['test']))

    def test_exception(self):
        operation = Mock(side_effect=RuntimeError('oops'))
        driver = QueueDriver(self.queues, 'test', operation, items_per_step=10)
        state = BatchState()
        self.assertRaises(RuntimeError, driver.step, state)
        self.assertEqual(1, operation.call_count, 'an error should end the step')
        self.assertEqual(0, state.completed)
        self.assertEqual(3, self.queues.count('test'),
                         'the item should be released to be claimed again')

        # interruptions release the item too
        operation = Mock(side_effect=KeyboardInterrupt)
        driver = QueueDriver(self.queues, 'test', operation)
        self.assertRaises(KeyboardInterrupt, driver.step, BatchState())
        self.assertEqual(3, self.queues.count('test'))

        driver = QueueDriver(self.queues, 'test', self.operation, items_per_step=10)
        with self.assertLogs('eulbatch.driver', level='WARNING'):
            driver.run()
        self.assertEqual([1, 2, 3], self.seen)

    def test_time_limit(self):
        driver = QueueDriver(self.queues, 'test', self.operation, items_per_step=10,
                             time_per_step=0)
        state = driver.step(BatchState())
        self.assertEqual([1], self.seen, 'at least one item should be processed per step')
        self.assertFalse(state.is_finished)
