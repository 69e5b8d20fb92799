# file eulbatch/state.py
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
import logging
import os


logger = logging.getLogger(__name__)

UNINITIALIZED = 'uninitialized'
ACTIVE = 'active'
EXHAUSTED = 'exhausted'

# item result status tags; see eulbatch.processors.ItemResult
PROCESSED = 'processed'
SKIPPED = 'skipped'
FAILED = 'failed'
MISSING = 'missing'


class BatchState(object):
    '''Everything a batch operation needs to resume where it left off.

    A state belongs to a single run of a single operation; drivers update
    it on every invocation and it can be saved and loaded between
    invocations (see :meth:`to_dict`, :meth:`save`, :meth:`load`).

    ``total`` is recomputed from a live count after every page, so
    :attr:`finished` can move backwards if records are added while the
    batch runs.
    '''

    #: attributes persisted by :meth:`to_dict`
    persistent_fields = ['status', 'total', 'last_key', 'completed',
                         'succeeded', 'failed', 'skipped', 'finished',
                         'message', 'data']

    def __init__(self, **kwargs):
        self.status = UNINITIALIZED
        self.total = None
        self.last_key = None
        self.completed = 0
        self.succeeded = 0
        self.failed = 0
        self.skipped = 0
        self.finished = 0.0
        self.message = ''
        #: processor-owned values that must survive between invocations
        self.data = {}
        for key, value in kwargs.items():
            if key not in self.persistent_fields:
                raise TypeError("Unexpected batch state field '%s'" % key)
            setattr(self, key, value)

    def __repr__(self):
        return '<BatchState %s %d/%s>' % (self.status, self.completed, self.total)

    @property
    def is_finished(self):
        return self.status == EXHAUSTED

    def record(self, result):
        '''Count a processed item from its
        :class:`~eulbatch.processors.ItemResult`.'''
        self.completed += 1
        if result.status == FAILED:
            self.failed += 1
        elif result.status == SKIPPED:
            self.skipped += 1
        else:
            self.succeeded += 1

    def advance(self, key):
        'Move the cursor forward to ``key`` if it is past the current one.'
        if self.last_key is None or key > self.last_key:
            self.last_key = key

    def update_progress(self, remaining):
        '''Recompute the total and the fraction complete from a fresh count
        of the records still to be processed.'''
        self.total = self.completed + remaining
        if remaining == 0:
            self.exhaust()
        else:
            self.finished = float(self.completed) / self.total

    def exhaust(self, message=None):
        self.status = EXHAUSTED
        self.finished = 1.0
        if message is not None:
            self.message = message

    def merge(self, other):
        'Add the counts from another state into this one.'
        self.completed += other.completed
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.skipped += other.skipped

    def summary(self):
        return 'Processed %(completed)d record(s): %(succeeded)d succeeded, ' \
            '%(failed)d failed, %(skipped)d skipped.' % self.to_dict()

    def to_dict(self):
        return dict((field, getattr(self, field)) for field in self.persistent_fields)

    @classmethod
    def from_dict(cls, data):
        return cls(**dict((k, v) for k, v in data.items() if k in cls.persistent_fields))

    def save(self, path):
        'Write the state to a json file, replacing any previous version.'
        tmp_path = '%s.tmp' % path
        with open(tmp_path, 'w') as statefile:
            json.dump(self.to_dict(), statefile)
        os.replace(tmp_path, path)

    @classmethod
    def load(cls, path):
        with open(path) as statefile:
            return cls.from_dict(json.load(statefile))
