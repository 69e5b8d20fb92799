# file eulbatch/api.py
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
import time
from urllib.parse import urljoin

import requests
from requests_toolbelt import user_agent

from eulbatch import __version__ as eulbatch_version
from eulbatch.util import RequestFailed, PermissionDenied

logger = logging.getLogger(__name__)


JSONAPI_CONTENT_TYPE = 'application/vnd.api+json'


class HTTP_API_Base(object):

    def __init__(self, base_url, username=None, password=None, retries=None):
        # standardize url format; ensure we have a trailing slash,
        # adding one if necessary
        if not base_url.endswith('/'):
            base_url = base_url + '/'

        self.session = requests.Session()
        # NOTE: only headers that will be common for *all* requests
        # to this site should be set in the session
        # (i.e., do NOT include auth information here)
        self.session.headers.update({
            'User-Agent': user_agent('eulbatch', eulbatch_version),
        })
        self.session.verify = True  # verify SSL certs by default
        # no retries is requests current default behavior, so only
        # customize if a value is set
        if retries is not None:
            adapter = requests.adapters.HTTPAdapter(max_retries=retries)
            self.session.mount('http://', adapter)
            self.session.mount('https://', adapter)

        self.base_url = base_url
        self.username = username
        self.password = password
        self.request_options = {}
        if self.username is not None:
            # store basic auth option to pass when making requests
            self.request_options['auth'] = (self.username, self.password)

    def absurl(self, rel_url):
        return urljoin(self.base_url, rel_url)

    def prep_url(self, url):
        return self.absurl(url)

    # thinnest possible wrappers around requests calls
    # - add auth, make urls absolute

    def _make_request(self, reqmeth, url, *args, **kwargs):
        # copy base request options and update with any keyword args
        rqst_options = self.request_options.copy()
        rqst_options.update(kwargs)
        start = time.time()
        response = reqmeth(self.prep_url(url), *args, **rqst_options)
        total_time = time.time() - start
        logger.debug('%s %s=>%d: %f sec' % (reqmeth.__name__.upper(), url,
                     response.status_code, total_time))

        # NOTE: currently doesn't do anything with 3xx  responses
        # (likely handled for us by requests)
        if response.status_code >= requests.codes.bad:  # 400 or worse
            # separate out 401 and 403 (permission errors) to enable
            # special handling in client code.
            if response.status_code in (requests.codes.unauthorized,
                                        requests.codes.forbidden):
                raise PermissionDenied(response)
            raise RequestFailed(response)
        return response

    def get(self, *args, **kwargs):
        return self._make_request(self.session.get, *args, **kwargs)

    def post(self, *args, **kwargs):
        return self._make_request(self.session.post, *args, **kwargs)

    def patch(self, *args, **kwargs):
        return self._make_request(self.session.patch, *args, **kwargs)

    def delete(self, *args, **kwargs):
        return self._make_request(self.session.delete, *args, **kwargs)


class JsonApi(HTTP_API_Base):
    """Python object for accessing the
    `Drupal JSON:API <https://www.drupal.org/docs/core-modules-and-themes/core-modules/jsonapi-module>`_
    of a repository site.

    Resources are addressed by entity type and bundle, e.g.
    ``jsonapi/node/islandora_object``.  Read methods return the decoded
    json document; write methods return the
    :class:`requests.models.Response`.
    """

    collection_url = 'jsonapi/%s/%s'

    def resource_url(self, entity_type, bundle, uuid=None, langcode=None):
        url = self.collection_url % (entity_type, bundle)
        if uuid is not None:
            url = '%s/%s' % (url, uuid)
        if langcode is not None:
            # translations are addressed with a language prefix
            url = '%s/%s' % (langcode, url)
        return url

    def get_collection(self, entity_type, bundle, params=None):
        '''Get a page of a resource collection.

        :param entity_type: entity type, e.g. ``node``
        :param bundle: bundle, e.g. ``islandora_object``
        :param params: dictionary of query string parameters (filters,
            sort, page limit and sparse fieldsets)
        :returns: decoded json:api document
        '''
        response = self.get(self.resource_url(entity_type, bundle), params=params,
                            headers={'Accept': JSONAPI_CONTENT_TYPE})
        return response.json()

    def get_next(self, url):
        '''Follow a ``links.next`` url from a previous collection
        response.'''
        response = self.get(url, headers={'Accept': JSONAPI_CONTENT_TYPE})
        return response.json()

    def patch_resource(self, entity_type, bundle, uuid, data):
        '''Update a single resource.

        :param data: resource object, with ``type``, ``id`` and the
            ``attributes`` and ``relationships`` to change
        '''
        return self.patch(self.resource_url(entity_type, bundle, uuid),
                          data=json.dumps({'data': data}),
                          headers={'Content-Type': JSONAPI_CONTENT_TYPE,
                                   'Accept': JSONAPI_CONTENT_TYPE})

    def delete_resource(self, entity_type, bundle, uuid, langcode=None):
        '''Delete a single resource, or only one of its translations when
        ``langcode`` is specified.'''
        return self.delete(self.resource_url(entity_type, bundle, uuid, langcode),
                           headers={'Accept': JSONAPI_CONTENT_TYPE})
