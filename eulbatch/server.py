# file eulbatch/server.py
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
:class:`eulbatch.server.Site` is a record store backed by the JSON:API of
a Drupal/Islandora repository site.

When you create an instance of :class:`~eulbatch.server.Site`, if you do
not specify connection parameters, it will attempt to initialize the
site connection from environment settings, using the names documented
below::

    # repository site settings
    EULBATCH_SITE_ROOT=https://repository.host.name/
    EULBATCH_SITE_USER=user
    EULBATCH_SITE_PASSWORD=password
    # optional retry setting (default is 3)
    EULBATCH_CONNECTION_RETRIES=5

If username and password are not specified, the site will be accessed
anonymously, which is generally only useful for dry runs.

----
"""

import logging
import os

from eulbatch.api import JsonApi
from eulbatch.models import Record
from eulbatch.query import BUNDLE_FIELDS
from eulbatch.store import RecordStore
from eulbatch.util import normalize_id

logger = logging.getLogger(__name__)


class Site(RecordStore):
    """Record store for a single repository site, accessed over JSON:API.

    Order of precedence for configuration:

        * Explicit parameters are used first.
        * If none are given, the ``EULBATCH_SITE_*`` environment settings
          are used.

    JSON:API has no notion of transactions, so :meth:`transaction` does
    not roll anything back; changes are written as soon as they are saved.
    Translations other than the default are not listed by JSON:API, so
    loaded records report none.
    """

    #: default number of retries to request for API connections; see
    #: http://docs.python-requests.org/en/master/api/#requests.adapters.HTTPAdapter
    retries = 3

    default_retry_option = object()
    # default retry option, so None can be recognized as an option

    #: maximum page size the JSON:API module allows
    page_limit = 50

    id_attributes = {
        'node': 'drupal_internal__nid',
        'media': 'drupal_internal__mid',
        'file': 'drupal_internal__fid',
        'taxonomy_term': 'drupal_internal__tid',
    }
    "attribute holding the internal (integer) id of each entity type"

    default_bundles = {
        'node': ['islandora_object'],
        'media': ['audio', 'document', 'extracted_text', 'file',
                  'fits_technical_metadata', 'image', 'remote_video', 'video'],
        'file': ['file'],
        'taxonomy_term': ['islandora_models', 'islandora_media_use',
                          'islandora_display'],
    }
    "bundles searched when a query does not select any"

    reference_types = {
        'field_member_of': 'node--islandora_object',
        'field_media_of': 'node--islandora_object',
        'field_model': 'taxonomy_term--islandora_models',
        'field_media_use': 'taxonomy_term--islandora_media_use',
        'field_display_hints': 'taxonomy_term--islandora_display',
        'field_media_file': 'file--file',
        'field_media_image': 'file--file',
        'field_media_audio_file': 'file--file',
        'field_media_video_file': 'file--file',
        'field_media_document': 'file--file',
        'thumbnail': 'file--file',
    }
    "relationship fields and the resource type they reference"

    filter_paths = {
        'field_external_uri': 'field_external_uri.uri',
    }
    "json:api filter paths for fields that are not filtered by name"

    operators = {
        'exact': '=',
        'gt': '>',
        'gte': '>=',
        'lt': '<',
        'lte': '<=',
        'in': 'IN',
        'contains': 'CONTAINS',
        'exists': 'IS NOT NULL',
        'notexists': 'IS NULL',
    }
    "json:api filter operators for each query operator"

    def __init__(self, root=None, username=None, password=None,
                 retries=default_retry_option, bundles=None):

        if root is None:
            root = os.environ.get('EULBATCH_SITE_ROOT')
            # if username and password are not set, attempt to pull from settings
            if username is None and password is None:
                username = os.environ.get('EULBATCH_SITE_USER')
                if username is not None:
                    password = os.environ.get('EULBATCH_SITE_PASSWORD')
            if os.environ.get('EULBATCH_CONNECTION_RETRIES'):
                self.retries = int(os.environ['EULBATCH_CONNECTION_RETRIES'])

        # if retries is specified in init options, that should override
        # default value or environment setting
        if retries is not self.default_retry_option:
            self.retries = retries

        if root is None:
            raise Exception('Cannot initialize a site connection without specifying ' +
                            'the site root url directly or as EULBATCH_SITE_ROOT')

        logger.debug("Connecting to site at %s %s" % (root,
                     'as %s' % username if username else '(no user credentials)'))
        self.api = JsonApi(root, username, password, retries=self.retries)
        self.site_root = self.api.base_url
        self.username = username
        self.bundles = dict(self.default_bundles)
        if bundles:
            self.bundles.update(bundles)

    def __repr__(self):
        return '<Site %s>' % self.site_root

    # query translation

    def id_attribute(self, entity_type):
        try:
            return self.id_attributes[entity_type]
        except KeyError:
            raise ValueError("Unsupported entity type '%s'" % entity_type)

    def query_bundles(self, query):
        return query.bundles or self.bundles.get(query.entity_type, [])

    def filter_path(self, entity_type, field):
        'JSON:API filter path for a query field.'
        if field == 'id':
            return self.id_attribute(entity_type)
        if field in self.filter_paths:
            return self.filter_paths[field]
        if field in self.reference_types:
            target_type = self.reference_types[field].split('--')[0]
            return '%s.%s' % (field, self.id_attribute(target_type))
        return field

    @staticmethod
    def _param_value(value):
        if isinstance(value, bool):
            return '1' if value else '0'
        return str(value)

    def filter_params(self, query):
        '''Translate the conditions of a :class:`~eulbatch.query.Query` into
        JSON:API filter parameters.  Bundle conditions are not included;
        bundles are separate resource collections.'''
        params = {}
        index = 0
        for condition in query.conditions:
            if condition.field in BUNDLE_FIELDS:
                continue
            op = condition.op
            if op == 'exists' and not condition.value:
                op = 'notexists'
            prefix = 'filter[c%d][condition]' % index
            params['%s[path]' % prefix] = self.filter_path(query.entity_type, condition.field)
            params['%s[operator]' % prefix] = self.operators[op]
            if op == 'in':
                params['%s[value][]' % prefix] = [self._param_value(v) for v in condition.value]
            elif op not in ('exists', 'notexists'):
                params['%s[value]' % prefix] = self._param_value(condition.value)
            index += 1
        return params

    def collection_params(self, query, bundle, limit):
        params = self.filter_params(query)
        id_attr = self.id_attribute(query.entity_type)
        params['sort'] = id_attr if query.sort_key == 'id' else query.sort_key
        params['page[limit]'] = limit
        # sparse fieldset; only the id is needed
        params['fields[%s--%s]' % (query.entity_type, bundle)] = id_attr
        return params

    @staticmethod
    def _next_link(document):
        link = document.get('links', {}).get('next')
        if isinstance(link, dict):
            return link.get('href')
        return link

    # RecordStore interface

    def count(self, query):
        total = 0
        for bundle in self.query_bundles(query):
            document = self.api.get_collection(query.entity_type, bundle,
                                               self.collection_params(query, bundle, self.page_limit))
            count = document.get('meta', {}).get('count')
            if count is not None:
                total += int(count)
                continue
            # count not enabled on the site; page through the ids instead
            total += len(document['data'])
            next_url = self._next_link(document)
            while next_url:
                document = self.api.get_next(next_url)
                total += len(document['data'])
                next_url = self._next_link(document)
        return total

    def query_page(self, query, after=None, limit=10):
        id_attr = self.id_attribute(query.entity_type)
        query = query.after(after)
        ids = []
        for bundle in self.query_bundles(query):
            document = self.api.get_collection(query.entity_type, bundle,
                                               self.collection_params(query, bundle, limit))
            ids.extend(resource['attributes'][id_attr] for resource in document['data'])
        # each bundle is sorted separately; merge and keep the first page
        return sorted(ids)[:limit]

    def load(self, entity_type, id):
        id_attr = self.id_attribute(entity_type)
        for bundle in self.bundles.get(entity_type, []):
            document = self.api.get_collection(entity_type, bundle,
                                               {'filter[%s]' % id_attr: id})
            if document['data']:
                return self.to_record(entity_type, bundle, document['data'][0])
        return None

    def save(self, record):
        data = {'type': self.resource_type(record), 'id': record.uuid}
        attributes = {}
        relationships = {}
        for field in sorted(record.changed):
            value = record.fields.get(field)
            if field in self.reference_types or field in record.references:
                relationships[field] = {'data': self.reference_data(record, field, value)}
            else:
                attributes[field] = value
        if attributes:
            data['attributes'] = attributes
        if relationships:
            data['relationships'] = relationships
        # an unchanged record is still saved, so the site runs its save hooks
        self.api.patch_resource(record.entity_type, record.bundle, record.uuid, data)
        record.changed.clear()
        return True

    def delete(self, record):
        self.api.delete_resource(record.entity_type, record.bundle, record.uuid)
        return True

    def remove_translation(self, record, langcode):
        self.api.delete_resource(record.entity_type, record.bundle, record.uuid,
                                 langcode=langcode)
        if langcode in record.translations:
            record.translations.remove(langcode)
        return True

    # conversion between json:api resources and records

    def resource_type(self, record):
        return '%s--%s' % (record.entity_type, record.bundle)

    @staticmethod
    def target_id(reference):
        return reference.get('meta', {}).get('drupal_internal__target_id', reference['id'])

    def to_record(self, entity_type, bundle, resource):
        '''Convert a JSON:API resource object to a
        :class:`~eulbatch.models.Record`.'''
        fields = {}
        for name, value in resource.get('attributes', {}).items():
            # link fields are reduced to their uri
            if isinstance(value, dict) and 'uri' in value:
                value = value['uri']
            fields[name] = value
        record_id = fields.pop(self.id_attribute(entity_type))

        references = {}
        for name, relationship in resource.get('relationships', {}).items():
            data = relationship.get('data')
            if isinstance(data, list):
                fields[name] = [self.target_id(d) for d in data]
            elif data:
                fields[name] = self.target_id(data)
            else:
                fields[name] = None
            references[name] = data

        record = Record(entity_type, record_id, bundle=bundle, fields=fields,
                        uuid=resource['id'])
        record.references = references
        return record

    def reference_data(self, record, field, value):
        '''JSON:API relationship data for the value of a reference field,
        reusing the loaded references where possible.'''
        loaded = record.references.get(field)
        if loaded is None:
            known = []
        elif isinstance(loaded, list):
            known = loaded
        else:
            known = [loaded]

        many = isinstance(value, (list, tuple)) or isinstance(loaded, list)
        values = value if isinstance(value, (list, tuple)) else ([] if value is None else [value])
        data = [self.resolve_reference(field, v, known) for v in values]
        if many:
            return data
        return data[0] if data else None

    def resolve_reference(self, field, target_id, known):
        target_id = normalize_id(target_id)
        for reference in known:
            if normalize_id(self.target_id(reference)) == target_id:
                return {'type': reference['type'], 'id': reference['id']}
        if field not in self.reference_types:
            raise ValueError("Cannot determine the resource type referenced by '%s'" % field)
        target_type = self.reference_types[field].split('--')[0]
        target = self.load(target_type, target_id)
        if target is None:
            raise ValueError('%s %s referenced by %s does not exist' % (target_type, target_id, field))
        return {'type': self.resource_type(target), 'id': target.uuid}
