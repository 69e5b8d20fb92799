# file eulbatch/query.py
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
Store-independent description of a set of records.

A :class:`Query` names an entity type and a list of conditions; record
stores translate it into whatever their backend understands (see
:class:`eulbatch.store.MemoryRecordStore` and
:class:`eulbatch.server.Site`).  Conditions are specified as keyword
arguments, using the same ``field__operator`` convention as Django
querysets::

    Query('node', type='islandora_object')
    Query('node', field_member_of=10, field_weight__exists=False)
    Query('media', field_media_use__in=[3, 4])

When no operator is given, ``exact`` is used.  A condition on a
multi-valued field matches if any of the field's values match.
"""

import copy
import logging

from eulbatch.util import normalize_id


logger = logging.getLogger(__name__)

#: fields that select the bundle (content type, media type, vocabulary)
#: rather than a field value
BUNDLE_FIELDS = ('bundle', 'type', 'vid')


def _normalize(value):
    # ids read from the command line arrive as strings
    if isinstance(value, (list, tuple, set)):
        return [normalize_id(v) for v in value]
    return normalize_id(value)


class Condition(object):
    '''A single query condition: field, operator and value.'''

    def __init__(self, field, op, value):
        self.field = field
        self.op = op
        self.value = value

    def __repr__(self):
        return '<Condition %s %s %r>' % (self.field, self.op, self.value)

    def __eq__(self, other):
        return isinstance(other, Condition) and \
            (self.field, self.op, self.value) == (other.field, other.op, other.value)

    def matches(self, values):
        '''Evaluate the condition against the list of values of a field.'''
        values = [normalize_id(v) for v in values]
        if self.op == 'exists':
            return bool(values) == bool(self.value)
        if self.op == 'notexists':
            return not values
        if self.op == 'in':
            wanted = _normalize(self.value)
            return any(v in wanted for v in values)
        if self.op == 'contains':
            return any(str(self.value) in str(v) for v in values)

        value = _normalize(self.value)
        compare = Query.comparisons[self.op]
        for v in values:
            try:
                if compare(v, value):
                    return True
            except TypeError:
                # mismatched types never match (e.g. None weight)
                continue
        return False


class Query(object):
    '''Entity type plus a list of conditions.  Queries are never modified
    in place; :meth:`filter` and :meth:`after` return refined copies.

    :param entity_type: entity type to query, e.g. ``node`` or ``media``
    :param sort_key: field records are ordered and paged by (default: id)
    '''

    comparisons = {
        'exact': lambda a, b: a == b,
        'gt': lambda a, b: a > b,
        'gte': lambda a, b: a >= b,
        'lt': lambda a, b: a < b,
        'lte': lambda a, b: a <= b,
    }

    operators = set(comparisons) | set(['in', 'exists', 'notexists', 'contains'])
    "supported condition operators"

    def __init__(self, entity_type, sort_key='id', **conditions):
        self.entity_type = entity_type
        self.sort_key = sort_key
        self.conditions = []
        self._add(conditions)

    def __repr__(self):
        return '<Query %s %r>' % (self.entity_type, self.conditions)

    def _add(self, conditions):
        for field, value in conditions.items():
            if '__' in field:
                field, op = field.rsplit('__', 1)
                if op not in self.operators:
                    raise Exception("Unsupported query operator '%s'" % op)
            else:
                op = 'exact'
            self.conditions.append(Condition(field, op, value))

    def filter(self, **conditions):
        'Return a copy of this query with additional conditions.'
        query = copy.copy(self)
        query.conditions = list(self.conditions)
        query._add(conditions)
        return query

    def after(self, key):
        '''Return a copy of this query restricted to records whose sort key
        is greater than ``key``; with no key, the query itself.'''
        if key is None:
            return self
        return self.filter(**{'%s__gt' % self.sort_key: key})

    @property
    def bundles(self):
        'bundles explicitly selected by the query, or None'
        for condition in self.conditions:
            if condition.field in BUNDLE_FIELDS:
                if condition.op == 'in':
                    return list(condition.value)
                return [condition.value]
        return None

    def matches(self, record):
        'Evaluate all conditions against a :class:`~eulbatch.models.Record`.'
        return all(condition.matches(record.values(condition.field))
                   for condition in self.conditions)
