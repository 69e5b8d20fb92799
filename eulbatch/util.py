# file eulbatch/util.py
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

import csv
import logging
import os

import requests


logger = logging.getLogger(__name__)


class RequestFailed(IOError):
    '''An exception representing an arbitrary error while trying to access
    the repository site over HTTP.
    '''
    detail = None

    def __init__(self, response, content=None):
        # init params:
        #  response = requests Response with the error information
        #  content = optional parsed json body, if it was already read
        super(RequestFailed, self).__init__('%d %s' % (response.status_code, response.text))
        self.code = response.status_code
        self.reason = response.text
        if content is None:
            try:
                content = response.json()
            except ValueError:
                content = None
        # json:api errors come back as a list of error objects; the first
        # one carries the most useful message
        if isinstance(content, dict) and content.get('errors'):
            error = content['errors'][0]
            self.detail = error.get('detail') or error.get('title')
        elif response.status_code == requests.codes.server_error:
            self.detail = response.text.split('\n')[0]


class PermissionDenied(RequestFailed):
    '''An exception representing a permission error while trying to access
    a record on the repository site.
    '''


class ValidationError(Exception):
    '''Pre-flight validation failed; the batch should not be started.'''


class SkipRecord(Exception):
    '''Raised by an item processor when the record it was handed cannot be
    processed (typically because it no longer exists).  The batch logs and
    counts the record, then moves on.'''


class RecordNotFound(SkipRecord):
    '''The record an item processor was handed does not exist (any more).'''


def parse_ids(value, arg_name='ids'):
    '''Parse a list of record identifiers, as passed on the command line.

    :param value: either the path to a file of identifiers, one per line,
        or the identifiers themselves separated by commas
    :param arg_name: name of the argument, for error messages
    :returns: list of identifiers as strings, in the order given
    :raises ValidationError: if the value names a file that cannot be read
    '''
    if os.path.isfile(value):
        if not os.access(value, os.R_OK):
            raise ValidationError("The passed file for '%s' appears to be a file, but is not readable." \
                                  % arg_name)
        with open(value) as idfile:
            ids = idfile.read().strip().split('\n')
    else:
        ids = value.split(',')
    return [i.strip() for i in ids if i.strip()]


def normalize_id(value):
    '''Convert numeric identifiers to int so they sort numerically;
    anything else is returned unchanged.'''
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


class AuditLog(object):
    '''CSV audit trail for a batch run: one row per processed record with
    the record id, a status tag and any detail columns, followed by
    summary rows when the log is closed.

    :param path: path of the csv file to write
    :param header: optional header row
    :param append: add to the rows of an existing file, as when a batch
        is resumed; the header is only written to a new or empty file
    '''

    default_header = ['ID', 'STATUS', 'DETAIL']

    def __init__(self, path, header=None, append=False):
        self.path = path
        write_header = not (append and os.path.exists(path) and os.path.getsize(path))
        self._file = open(path, 'a' if append else 'w', newline='')
        self.writer = csv.writer(self._file, quoting=csv.QUOTE_ALL)
        if write_header:
            self.writer.writerow(header or self.default_header)

    def record(self, result):
        'Write a row for an :class:`~eulbatch.processors.ItemResult`.'
        self.writer.writerow([result.id, result.status] + list(result.detail))

    @property
    def closed(self):
        return self._file.closed

    def close(self, summary=None):
        'Write any summary rows and close the file; closing again does nothing.'
        if self.closed:
            return
        if summary:
            self.writer.writerow([])  # blank row
            for line in summary:
                self.writer.writerow([line])
        self._file.close()
