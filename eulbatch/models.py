# file eulbatch/models.py
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

from eulbatch.query import BUNDLE_FIELDS


logger = logging.getLogger(__name__)


class Record(object):
    """A single entity loaded from a record store (a node, media, file or
    taxonomy term).

    Field values are kept as loaded; reference fields hold the ids of the
    records they point to.  Fields modified with :meth:`set` are tracked in
    :attr:`changed` so stores can write back only what changed.

    :param entity_type: entity type id, e.g. ``node``
    :param id: record identifier (the key batches are ordered by)
    :param bundle: bundle (content type, media type or vocabulary)
    :param fields: dictionary of field values
    :param translations: language codes of any non-default translations
    :param uuid: optional store-specific identifier
    """

    def __init__(self, entity_type, id, bundle=None, fields=None,
                 translations=None, uuid=None):
        self.entity_type = entity_type
        self.id = id
        self.bundle = bundle
        self.fields = dict(fields or {})
        self.translations = list(translations or [])
        self.uuid = uuid
        #: raw reference data as loaded, for stores that need it on save
        self.references = {}
        self.changed = set()

    def __repr__(self):
        return '<Record %s %s>' % (self.entity_type, self.id)

    def __eq__(self, other):
        if not isinstance(other, Record):
            return NotImplemented
        return (self.entity_type, self.id, self.bundle, self.fields, self.translations) == \
            (other.entity_type, other.id, other.bundle, other.fields, other.translations)

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def has_field(self, field):
        return field in self.fields

    def get(self, field, default=None):
        return self.fields.get(field, default)

    def values(self, field):
        '''List of the values of a field; empty when the field is missing
        or unset.  ``id`` and the bundle fields resolve to the record's own
        id and bundle.'''
        if field == 'id':
            return [self.id]
        if field in BUNDLE_FIELDS and field not in self.fields:
            return [self.bundle] if self.bundle is not None else []
        value = self.fields.get(field)
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [v for v in value if v is not None]
        return [value]

    def first(self, field, default=None):
        values = self.values(field)
        return values[0] if values else default

    def set(self, field, value):
        self.fields[field] = value
        self.changed.add(field)
        return self
