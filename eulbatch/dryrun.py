# file eulbatch/dryrun.py
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


logger = logging.getLogger(__name__)


def format_callable(func):
    '''Name of a function or bound method for log output, e.g.
    ``MemoryRecordStore.save``.'''
    owner = getattr(func, '__self__', None)
    name = getattr(func, '__name__', repr(func))
    if owner is not None:
        return '%s.%s' % (type(owner).__name__, name)
    return name


class Operations(object):
    '''Every change a processor makes to a store goes through an
    :class:`Operations` instance.  In dry-run mode nothing is called; the
    operation is logged as something that would have happened and
    ``True`` is returned in its place.

    :param store: the :class:`~eulbatch.store.RecordStore` to write to
    :param dry_run: log changes instead of making them
    '''

    def __init__(self, store, dry_run=False):
        self.store = store
        self.dry_run = dry_run

    def invoke(self, label, func, *args):
        '''Call ``func`` with ``args``, unless in dry-run mode.

        :param label: name of the operation for log messages; when None,
            the name of ``func`` is used
        :returns: the result of the call, or True in dry-run mode
        '''
        context = {'callable': label or format_callable(func), 'args': args}
        if self.dry_run:
            logger.info('Would call %(callable)s with %(args)r.', context)
            return True
        logger.debug('Calling %(callable)s with %(args)r.', context)
        return func(*args)

    def set_field(self, record, field, value):
        return self.invoke(None, record.set, field, value)

    def save(self, record):
        return self.invoke(None, self.store.save, record)

    def delete(self, record):
        return self.invoke(None, self.store.delete, record)

    def remove_translation(self, record, langcode):
        return self.invoke(None, self.store.remove_translation, record, langcode)
