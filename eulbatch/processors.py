# file eulbatch/processors.py
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
Item processors: the per-record work a batch does.

Each processor handles a single record id at a time through
:meth:`ItemProcessor.run`, which never raises for a record level problem.
A record that cannot be loaded is reported as skipped; any other error is
logged with its traceback and reported as failed, so that one bad record
never stops a batch.  All changes go through
:class:`eulbatch.dryrun.Operations`, so every processor supports dry runs.

Processors are selected by tag with :meth:`get_processor`::

    processor = get_processor('update-status', store, ancestors=[10],
                              publish=True)
"""

from collections import namedtuple
import logging

from eulbatch.cursor import iter_ids
from eulbatch.dryrun import Operations
from eulbatch.query import Query
from eulbatch.state import PROCESSED, SKIPPED, FAILED, MISSING
from eulbatch.util import RecordNotFound, SkipRecord, normalize_id


logger = logging.getLogger(__name__)


#: outcome of processing a single record: the record id, a status tag
#: and a tuple of detail messages for the audit log
ItemResult = namedtuple('ItemResult', ['id', 'status', 'detail'])

MEDIA_OF_FIELD = 'field_media_of'
MEMBER_OF_FIELD = 'field_member_of'
MEDIA_USE_FIELD = 'field_media_use'

#: media fields that reference files
DEFAULT_FILE_FIELDS = ('field_media_file', 'field_media_image',
                       'field_media_audio_file', 'field_media_video_file',
                       'field_media_document', 'thumbnail')


def related_media(store, node, media_of_field=MEDIA_OF_FIELD, **conditions):
    '''List of the media records that belong to a node, optionally
    restricted by additional query conditions.'''
    conditions[media_of_field] = node.id
    media = []
    for mid in iter_ids(store, Query('media', **conditions)):
        record = store.load('media', mid)
        if record is None:
            logger.debug('Failed to load media %(media)s; skipping.', {'media': mid})
            continue
        media.append(record)
    return media


class DerivativeService(object):
    '''Triggers regeneration of the derivatives of a media.'''

    def execute_derivative_reactions(self, node, media):
        raise NotImplementedError


class ResaveDerivativeService(DerivativeService):
    '''Re-saves the source media, so the site runs its derivative
    reactions for it again.'''

    def __init__(self, store):
        self.store = store

    def execute_derivative_reactions(self, node, media):
        logger.debug('Re-saving media %(media)s of node %(node)s.',
                     {'media': media.id, 'node': node.id})
        return self.store.save(media)


class MediaUseExaminer(object):
    '''Reports the expected media uses a node has no media for.

    :param store: record store
    :param media_uses: dictionary of expected media use term ids and the
        use uri they stand for
    :param media_field: media field holding the media use
    :param source_uses: optional dictionary of source media use term ids
        and uris; a node without any source media is reported as such,
        since there is nothing to derive from
    '''

    def __init__(self, store, media_uses, media_field=MEDIA_USE_FIELD, source_uses=None):
        self.store = store
        self.media_uses = dict((normalize_id(k), v) for k, v in media_uses.items())
        self.media_field = media_field
        self.source_uses = dict((normalize_id(k), v) for k, v in (source_uses or {}).items())

    def examine(self, node):
        '''Examine a node.

        :returns: list of problems, each a dictionary with ``bundle``,
            ``use_uri`` and ``message``; empty when nothing is missing
        '''
        present = set()
        for media in related_media(self.store, node):
            present.update(normalize_id(v) for v in media.values(self.media_field))
        if self.source_uses and not present & set(self.source_uses):
            return [{
                'bundle': node.bundle,
                'use_uri': ', '.join(sorted(self.source_uses.values())),
                'message': 'No source media found.',
            }]
        problems = []
        for tid in sorted(self.media_uses, key=str):
            if tid not in present:
                uri = self.media_uses[tid]
                problems.append({
                    'bundle': node.bundle,
                    'use_uri': uri,
                    'message': 'No media found with use %s.' % uri,
                })
        return problems


class ItemProcessor(object):
    '''Base class for item processors.  Subclasses implement
    :meth:`process`.

    :param store: :class:`~eulbatch.store.RecordStore` to process records in
    :param dry_run: log changes instead of making them
    '''

    #: tag the processor is registered under
    tag = None
    #: entity type of the ids the processor is handed
    entity_type = 'node'
    #: template for :meth:`describe`
    description = 'Process %(type)s %(id)s'

    def __init__(self, store, dry_run=False):
        self.store = store
        self.ops = Operations(store, dry_run=dry_run)

    @property
    def dry_run(self):
        return self.ops.dry_run

    def load(self, record_id, entity_type=None):
        '''Load a record, raising :class:`~eulbatch.util.RecordNotFound` when it
        does not exist.'''
        entity_type = entity_type or self.entity_type
        record = self.store.load(entity_type, record_id)
        if record is None:
            raise RecordNotFound('Failed to load %s %s; skipping.' % (entity_type, record_id))
        return record

    def run(self, record_id, state):
        '''Process a single record id, isolating any error.

        :returns: :class:`ItemResult`
        '''
        try:
            result = self.process(record_id, state)
        except SkipRecord as err:
            logger.info('%(message)s', {'message': err})
            return ItemResult(record_id, SKIPPED, (str(err),))
        except Exception as err:
            logger.exception('Encountered an exception processing %(id)s: %(exception)s',
                             {'id': record_id, 'exception': err})
            return ItemResult(record_id, FAILED, (str(err),))

        if result is None:
            result = ItemResult(record_id, PROCESSED, ())
        return result

    def process(self, record_id, state):
        '''Process a record.  Returns None for an unremarkable success, or an
        :class:`ItemResult` to report a status or details.'''
        raise NotImplementedError

    def describe(self, record_id):
        return self.description % {'type': self.entity_type, 'id': record_id}


class DeleteRecordProcessor(ItemProcessor):
    '''Delete a node along with its media.  Files referenced by the media
    are marked temporary, so the site can garbage collect them.'''
    tag = 'delete'
    description = 'Delete %(type)s %(id)s with its media and translations'

    def __init__(self, store, dry_run=False, file_fields=DEFAULT_FILE_FIELDS,
                 media_of_field=MEDIA_OF_FIELD):
        super(DeleteRecordProcessor, self).__init__(store, dry_run=dry_run)
        self.file_fields = file_fields
        self.media_of_field = media_of_field

    def process(self, record_id, state):
        logger.debug('Deleting %(id)s.', {'id': record_id})
        with self.store.transaction():
            node = self.load(record_id)
            media_count = self.delete_related_media(node)
            self.delete_translations(node)
            logger.debug('Deleting node %(nid)s.', {'nid': node.id})
            self.ops.delete(node)
        return ItemResult(record_id, PROCESSED, ('%d media' % media_count,))

    def find_related_files(self, media, seen):
        for field in self.file_fields:
            for fid in media.values(field):
                fid = normalize_id(fid)
                if fid in seen:
                    continue
                seen.add(fid)
                record = self.store.load('file', fid)
                if record is None:
                    logger.debug('Failed to load file %(fid)s of media %(id)s; skipping.',
                                 {'fid': fid, 'id': media.id})
                    continue
                yield record

    def delete_related_media(self, node):
        seen_files = set()
        media_list = related_media(self.store, node, self.media_of_field)
        for media in media_list:
            for file_record in self.find_related_files(media, seen_files):
                logger.debug('Setting file %(fid)s of media %(id)s of node %(nid)s to "temporary".',
                             {'fid': file_record.id, 'id': media.id, 'nid': node.id})
                self.ops.set_field(file_record, 'status', False)
                self.ops.save(file_record)

            self.delete_translations(media)
            logger.debug('Deleting media %(id)s; of node %(nid)s.',
                         {'id': media.id, 'nid': node.id})
            self.ops.delete(media)
        return len(media_list)

    def delete_translations(self, record):
        for langcode in list(record.translations):
            logger.debug('Deleting %(lang)s translation of %(type)s %(id)s.',
                         {'lang': langcode, 'type': record.entity_type, 'id': record.id})
            self.ops.remove_translation(record, langcode)


class RederiveProcessor(ItemProcessor):
    '''Re-run the derivative reactions for a source media.

    :param service: :class:`DerivativeService`; defaults to
        :class:`ResaveDerivativeService`
    '''
    tag = 'rederive'
    entity_type = 'media'
    description = 'Re-derive %(type)s %(id)s'

    def __init__(self, store, dry_run=False, service=None, media_of_field=MEDIA_OF_FIELD):
        super(RederiveProcessor, self).__init__(store, dry_run=dry_run)
        self.service = service or ResaveDerivativeService(store)
        self.media_of_field = media_of_field

    def process(self, record_id, state):
        media = self.load(record_id)
        parent_id = media.first(self.media_of_field)
        node = self.store.load('node', parent_id) if parent_id is not None else None
        if node is None:
            raise SkipRecord('Failed to identify/load node for media %s; skipping.' % record_id)

        self.ops.invoke(None, self.service.execute_derivative_reactions, node, media)
        logger.debug('Derivative reactions executed for %(node)s/%(media)s.',
                     {'node': node.id, 'media': media.id})
        return ItemResult(record_id, PROCESSED, ('node %s' % node.id,))


class GenerateDerivativesProcessor(ItemProcessor):
    '''Generate a missing derivative for a node by re-running the
    derivative reactions of its source media.

    :param target_use_ids: media use term ids of the derivative; nodes that
        already have media with one of these uses are skipped
    :param source_use_ids: media use term ids of the source media
    '''
    tag = 'generate-derivatives'
    description = 'Generate derivatives for %(type)s %(id)s'

    def __init__(self, store, dry_run=False, service=None, target_use_ids=None,
                 source_use_ids=None, media_use_field=MEDIA_USE_FIELD):
        super(GenerateDerivativesProcessor, self).__init__(store, dry_run=dry_run)
        self.service = service or ResaveDerivativeService(store)
        self.target_use_ids = list(target_use_ids or [])
        self.source_use_ids = list(source_use_ids or [])
        self.media_use_field = media_use_field

    def process(self, record_id, state):
        node = self.load(record_id)
        if self.target_use_ids:
            existing = self.store.count(Query('media', **{
                MEDIA_OF_FIELD: node.id,
                '%s__in' % self.media_use_field: self.target_use_ids}))
            if existing:
                logger.debug('Node %(nid)s already has a derivative; skipping.', {'nid': node.id})
                return ItemResult(record_id, SKIPPED, ('Derivative already present.',))

        conditions = {}
        if self.source_use_ids:
            conditions['%s__in' % self.media_use_field] = self.source_use_ids
        sources = related_media(self.store, node, **conditions)
        if not sources:
            return ItemResult(record_id, SKIPPED, ('Unable to find source media.',))

        for media in sources:
            logger.info('Performing derivative reactions for media %(media)s of node %(nid)s.',
                        {'media': media.id, 'nid': node.id})
            self.ops.invoke(None, self.service.execute_derivative_reactions, node, media)
        return ItemResult(record_id, PROCESSED, tuple('media %s' % m.id for m in sources))


class MissingDerivativesProcessor(ItemProcessor):
    '''Report nodes that are missing expected derivatives.  Makes no
    changes.'''
    tag = 'missing-derivatives'
    description = 'Examine derivatives of %(type)s %(id)s'

    def __init__(self, store, dry_run=False, examiner=None):
        super(MissingDerivativesProcessor, self).__init__(store, dry_run=dry_run)
        self.examiner = examiner or MediaUseExaminer(store, {})

    def process(self, record_id, state):
        node = self.load(record_id)
        logger.debug('Examining derivatives for node id: %(node)s.', {'node': node.id})
        problems = self.examiner.examine(node)
        details = []
        for problem in problems:
            context = dict(problem, node=node.id)
            logger.info('Missing derivatives detected. nid: %(node)s, bundle: %(bundle)s, '
                        'uri: %(use_uri)s. Message: %(message)s', context)
            details.append('%(bundle)s %(use_uri)s: %(message)s' % context)
        logger.debug('Examination complete for node id: %(node)s.', {'node': node.id})
        if details:
            return ItemResult(record_id, MISSING, tuple(details))


class UpdateWeightProcessor(ItemProcessor):
    '''Assign consecutive weights to nodes.  The next weight is kept in the
    batch state so a resumed batch continues the sequence.'''
    tag = 'update-weight'
    description = 'Set weight of %(type)s %(id)s'

    def __init__(self, store, dry_run=False, starting_weight=0, weight_field='field_weight'):
        super(UpdateWeightProcessor, self).__init__(store, dry_run=dry_run)
        self.starting_weight = starting_weight
        self.weight_field = weight_field

    def process(self, record_id, state):
        node = self.load(record_id)
        weight = state.data.setdefault('weight', self.starting_weight)
        with self.store.transaction():
            self.ops.set_field(node, self.weight_field, weight)
            self.ops.save(node)
        logger.debug('Updated weight for %(node)s.', {'node': node.id})
        state.data['weight'] = weight + 1
        return ItemResult(record_id, PROCESSED, ('weight %d' % weight,))


class RepairReferenceProcessor(ItemProcessor):
    '''Remove repeated references to the same target from a multi-valued
    reference field, keeping the first one.'''
    tag = 'repair-reference'
    description = 'Repair references of %(type)s %(id)s'

    def __init__(self, store, dry_run=False, field=None, target_id=None, entity_type=None):
        super(RepairReferenceProcessor, self).__init__(store, dry_run=dry_run)
        if field is None or target_id is None:
            raise ValueError('Repairing references requires a field and a target id')
        self.field = field
        self.target_id = normalize_id(target_id)
        if entity_type is not None:
            self.entity_type = entity_type

    def process(self, record_id, state):
        record = self.load(record_id)
        values = record.values(self.field)
        repaired = []
        seen = False
        for value in values:
            if normalize_id(value) == self.target_id:
                if seen:
                    continue
                seen = True
            repaired.append(value)

        removed = len(values) - len(repaired)
        if not removed:
            return ItemResult(record_id, SKIPPED,
                              ('No repeated references to %s.' % self.target_id,))
        with self.store.transaction():
            self.ops.set_field(record, self.field, repaired)
            self.ops.save(record)
        logger.info('Removed %(count)d repeated reference(s) to %(target)s from %(field)s of %(id)s.',
                    {'count': removed, 'target': self.target_id, 'field': self.field,
                     'id': record_id})
        return ItemResult(record_id, PROCESSED, ('removed %d' % removed,))


class UpdateStatusProcessor(ItemProcessor):
    '''Publish or unpublish the nodes that descend from any of a list of
    ancestors, together with their media.  The ancestors themselves are
    not changed.'''
    tag = 'update-status'
    description = 'Update status of %(type)s %(id)s'

    def __init__(self, store, dry_run=False, ancestors=None, publish=False,
                 member_field=MEMBER_OF_FIELD, status_field='status'):
        super(UpdateStatusProcessor, self).__init__(store, dry_run=dry_run)
        self.ancestors = set(normalize_id(a) for a in ancestors or [])
        self.publish = publish
        self.member_field = member_field
        self.status_field = status_field

    def find_ancestors(self, node):
        'Set of the ids of every node a node is a member of, directly or not.'
        ancestors = set()
        pending = list(node.values(self.member_field))
        while pending:
            parent_id = normalize_id(pending.pop())
            if parent_id in ancestors:
                continue
            ancestors.add(parent_id)
            parent = self.store.load('node', parent_id)
            if parent is not None:
                pending.extend(parent.values(self.member_field))
        return ancestors

    def process(self, record_id, state):
        node = self.load(record_id)
        logger.debug('Processing node %(id)s; finding ancestors.', {'id': node.id})
        if not self.find_ancestors(node) & self.ancestors:
            return ItemResult(record_id, SKIPPED, ('Not a descendant of the given ancestors.',))

        with self.store.transaction():
            self.ops.set_field(node, self.status_field, self.publish)
            self.ops.save(node)
            media_list = related_media(self.store, node)
            for media in media_list:
                logger.debug('Processing media %(id)s; of node %(nid)s.',
                             {'id': media.id, 'nid': node.id})
                self.ops.set_field(media, self.status_field, self.publish)
                self.ops.save(media)
        return ItemResult(record_id, PROCESSED,
                          ('%s with %d media' % ('published' if self.publish else 'unpublished',
                                                 len(media_list)),))


class SetFieldProcessor(ItemProcessor):
    'Set a field to a fixed value.'
    tag = 'set-field'
    description = 'Set field of %(type)s %(id)s'

    def __init__(self, store, dry_run=False, field=None, value=None, entity_type=None):
        super(SetFieldProcessor, self).__init__(store, dry_run=dry_run)
        if field is None:
            raise ValueError('Setting a field requires a field name')
        self.field = field
        self.value = value
        if entity_type is not None:
            self.entity_type = entity_type

    def process(self, record_id, state):
        record = self.load(record_id)
        with self.store.transaction():
            self.ops.set_field(record, self.field, self.value)
            self.ops.save(record)
        logger.info('Updated %(field)s for %(id)s.', {'field': self.field, 'id': record_id})

    def describe(self, record_id):
        return 'Set %s of %s %s to %r' % (self.field, self.entity_type, record_id, self.value)


#: item processors by tag
PROCESSORS = dict((cls.tag, cls) for cls in [
    DeleteRecordProcessor,
    RederiveProcessor,
    GenerateDerivativesProcessor,
    MissingDerivativesProcessor,
    UpdateWeightProcessor,
    RepairReferenceProcessor,
    UpdateStatusProcessor,
    SetFieldProcessor,
])


def get_processor(tag, store, **kwargs):
    '''Initialize the item processor registered under a tag.

    :param tag: processor tag, one of the keys of :data:`PROCESSORS`
    :param store: record store the processor works on
    :param kwargs: processor-specific options
    :raises ValueError: for an unknown tag
    '''
    try:
        cls = PROCESSORS[tag]
    except KeyError:
        raise ValueError("Unknown processor '%s'; expected one of %s" %
                         (tag, ', '.join(sorted(PROCESSORS))))
    return cls(store, **kwargs)
