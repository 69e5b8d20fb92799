# file eulbatch/commands.py
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
'''

Command line interface for running maintenance batches against an
Islandora repository site.

Every command takes the site connection options and the common batch
options, for example::

  $ eulbatch delete-recursively --site-root=https://repo.example.edu/ \
        --site-user=admin --site-password --dry-run 10,14

Connection options not given on the command line are read from the
``EULBATCH_SITE_ROOT``, ``EULBATCH_SITE_USER`` and
``EULBATCH_SITE_PASSWORD`` environment settings.  Lists of ids can be
given either comma separated or as the path of a file with one id per
line.  With ``--csv-file``, one row is written for every record
processed, followed by summary rows.  With ``--state-file``, progress is
checkpointed after every invocation and an interrupted batch picks up
where it left off, appending to its csv file, when the same command is
run again.

For the list of commands and their options, see::

  $ eulbatch --help
  $ eulbatch <command> --help

'''
import argparse
import copy
import csv
from getpass import getpass
import logging
from logging import config
import os
import sqlite3
import sys

import requests

from eulbatch.batch import Batch, BatchRunner, QueueRunner
from eulbatch.cursor import CursorIterator, iter_ids
from eulbatch.driver import BatchDriver
from eulbatch.pipeline import RecursiveDeleter
from eulbatch.processors import DeleteRecordProcessor, RederiveProcessor, \
    GenerateDerivativesProcessor, MissingDerivativesProcessor, MediaUseExaminer, \
    UpdateWeightProcessor, RepairReferenceProcessor, UpdateStatusProcessor, \
    SetFieldProcessor, MEMBER_OF_FIELD, PROCESSORS, get_processor
from eulbatch.progress import LoggingProgress, ProgressBarProgress
from eulbatch.query import Query
from eulbatch.queue import MemoryQueueStore, SqliteQueueStore
from eulbatch.server import Site
from eulbatch.state import BatchState
from eulbatch.store import IdListSource
from eulbatch.util import AuditLog, RequestFailed, ValidationError, parse_ids, \
    normalize_id

logger = logging.getLogger(__name__)


LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'basic': {
            'format': '[%(asctime)s] %(levelname)s:%(name)s::%(message)s',
            'datefmt': '%d/%b/%Y %H:%M:%S',
         },
    },
    'handlers': {
        'console': {
            'level': 'DEBUG',
            'class': 'logging.StreamHandler',
            'formatter': 'basic'
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        # request logging from urllib3 is only useful when debugging
        'urllib3': {
            'level': 'WARNING',
        },
    }
}

ORIGINAL_FILE_URI = 'http://pcdm.org/use#OriginalFile'
SERVICE_FILE_URI = 'http://pcdm.org/use#ServiceFile'
THUMBNAIL_URI = 'http://pcdm.org/use#ThumbnailImage'
BOOK_MODEL_URI = 'https://schema.org/Book'
MIRADOR_DISPLAY_URI = 'https://projectmirador.org'

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2

DEFAULT_PAGE_SIZE = 10
STATUS_PAGE_SIZE = 100


def configure_logging(level):
    logging_config = copy.deepcopy(LOGGING)
    logging_config['root']['level'] = level
    config.dictConfig(logging_config)


class PasswordAction(argparse.Action):
    def __call__(self, parser, namespace, value, option_string=None):
        # if a value was specified on the command-line, use that
        if value:
            setattr(namespace, self.dest, value)
        # otherwise, use getpass to prompt for a password
        else:
            setattr(namespace, self.dest, getpass())


# collaborators; separate functions so they can be swapped out in tests

def get_store(args):
    if not (args.site_root or os.environ.get('EULBATCH_SITE_ROOT')):
        raise ValidationError('Site root url must be specified with --site-root '
                              'or as EULBATCH_SITE_ROOT')
    return Site(args.site_root, args.site_user, args.site_password)


def get_queues(args):
    if args.queue_db:
        return SqliteQueueStore(args.queue_db)
    return MemoryQueueStore()


def get_progress(args, title):
    if args.progress:
        return ProgressBarProgress(title)
    return LoggingProgress()


def resuming(args):
    return bool(args.state_file) and os.path.exists(args.state_file)


def open_audit(args):
    '''Audit log for the ``--csv-file`` option, if given.  A resumed batch
    appends to the rows written before it was interrupted.'''
    if args.csv_file:
        return AuditLog(args.csv_file, append=resuming(args))
    return None


def summary_lines(state):
    return [
        'Processed %(completed)d record(s)' % state.to_dict(),
        'Succeeded: %(succeeded)d' % state.to_dict(),
        'Failed: %(failed)d' % state.to_dict(),
        'Skipped: %(skipped)d' % state.to_dict(),
    ]


def report(states, audit=None):
    'Log the combined counts of a finished batch and close the audit log.'
    totals = BatchState()
    for state in states:
        totals.merge(state)
    logger.info(totals.summary())
    if audit is not None:
        audit.close(summary_lines(totals))
    return totals


def get_runner(args, title):
    return BatchRunner(progress=get_progress(args, title), state_path=args.state_file)


def run_batch(args, batch, audit=None, runner=None):
    if runner is None:
        runner = get_runner(args, batch.title)
    try:
        return report(runner.process(batch), audit)
    finally:
        if audit is not None:
            audit.close()


def term_ids(store, vocabulary, uris):
    'Ids of the taxonomy terms of a vocabulary with any of the given uris.'
    query = Query('taxonomy_term', vid=vocabulary, field_external_uri__in=list(uris))
    return list(iter_ids(store, query))


def split_csv(value):
    return [v.strip() for v in next(csv.reader([value])) if v.strip()]


# commands

def delete_recursively(args):
    if args.state_file and not args.queue_db:
        raise ValidationError('--state-file requires --queue-db, so that the deletion queues '
                              'outlive an interrupted run')
    ids = [normalize_id(i) for i in parse_ids(args.ids)]
    store = get_store(args)
    runner = get_runner(args, RecursiveDeleter.title)
    # a resumed run carries on with the queues of the interrupted one
    context = runner.saved_context() or {}
    processor = DeleteRecordProcessor(store, dry_run=args.dry_run)
    deleter = RecursiveDeleter(store, get_queues(args), processor,
                               prefix=context.get('prefix'), page_size=args.page_size)
    audit = open_audit(args)
    run_batch(args, deleter.batch(ids, empty=args.empty, audit=audit), audit, runner)


def rederive(args):
    store = get_store(args)
    source_tids = list(iter_ids(store, Query('taxonomy_term',
                                             field_external_uri=args.source_uri)))
    if not source_tids:
        raise ValidationError("The provided source uri (%s) did not match any taxonomy "
                              "terms' field_external_uri field." % args.source_uri)
    query = Query('media', field_media_of__exists=True, field_media_use__in=source_tids)
    audit = open_audit(args)
    driver = BatchDriver(CursorIterator(store, query, args.page_size),
                         RederiveProcessor(store, dry_run=args.dry_run), audit)
    run_batch(args, Batch('Re-deriving derivatives...', [driver]), audit)


def generate_derivatives(args):
    providers = [name for name in ('nids', 'model_name', 'model_uri')
                 if getattr(args, name)]
    if not providers:
        raise ValidationError("One of '--nids', '--model-name' or '--model-uri' must be passed.")
    if len(providers) > 1:
        raise ValidationError("Only one of '--nids', '--model-name' and '--model-uri' may be passed.")

    store = get_store(args)
    if args.nids:
        source, query = IdListSource(parse_ids(args.nids, 'nids')), None
    else:
        if args.model_uri:
            models = term_ids(store, 'islandora_models', split_csv(args.model_uri))
        else:
            models = list(iter_ids(store, Query('taxonomy_term', vid='islandora_models',
                                                name__in=split_csv(args.model_name))))
        if not models:
            raise ValidationError('No models found matching %s' % (args.model_uri or args.model_name))
        source, query = store, Query('node', type='islandora_object', field_model__in=models)

    target_tids = term_ids(store, 'islandora_media_use', [args.media_use_uri])
    if not target_tids:
        raise ValidationError('No media use found with uri %s' % args.media_use_uri)
    source_tids = term_ids(store, 'islandora_media_use', [args.source_uri])

    processor = GenerateDerivativesProcessor(store, dry_run=args.dry_run,
                                             target_use_ids=target_tids,
                                             source_use_ids=source_tids)
    audit = open_audit(args)
    driver = BatchDriver(CursorIterator(source, query, args.page_size), processor, audit)
    run_batch(args, Batch('Regenerate derivatives', [driver]), audit)


def missing_derivatives(args):
    store = get_store(args)
    query = Query('node', type='islandora_object')
    if not store.count(query):
        logger.info('No nodes of type islandora_object found. Exiting without further processing.')
        return

    uris = split_csv(args.derivative_uris)
    media_uses = {}
    for uri in uris:
        for tid in term_ids(store, 'islandora_media_use', [uri]):
            media_uses[tid] = uri
    source_uses = dict((tid, args.source_uri)
                       for tid in term_ids(store, 'islandora_media_use', [args.source_uri]))
    examiner = MediaUseExaminer(store, media_uses, source_uses=source_uses)

    count = store.count(query)
    audit = open_audit(args)
    driver = BatchDriver(CursorIterator(store, query, args.page_size),
                         MissingDerivativesProcessor(store, examiner=examiner), audit)
    run_batch(args, Batch('Reviewing %d object(s) for missing derivatives..' % count,
                          [driver]), audit)


def null_child_weight_updater(args):
    store = get_store(args)
    parent = store.load('node', args.parent)
    if parent is None:
        raise ValidationError('The node (nid: %s) does not exist.' % args.parent)
    if not parent.has_field(MEMBER_OF_FIELD):
        raise ValidationError("The node (nid: %s) does not have an Islandora 'member of' field."
                              % args.parent)

    # only parents whose children mix weighted and unweighted records
    children = Query('node', **{MEMBER_OF_FIELD: parent.id})
    weights = []
    for nid in iter_ids(store, children.filter(field_weight__exists=True)):
        child = store.load('node', nid)
        if child is not None and child.first('field_weight') is not None:
            weights.append(child.first('field_weight'))
    unweighted = children.filter(field_weight__notexists=True)
    if not weights or not store.count(unweighted):
        logger.info('No applicable children found to be updated.')
        return

    starting_weight = max(weights) + 1
    if args.dry_run:
        nids = list(iter_ids(store, unweighted))
        logger.info('Would have set weight on nids: %(nids)s',
                    {'nids': ', '.join(str(n) for n in nids)})
        return

    audit = open_audit(args)
    processor = UpdateWeightProcessor(store, starting_weight=starting_weight)
    driver = BatchDriver(CursorIterator(store, unweighted, args.page_size), processor, audit)
    run_batch(args, Batch('Adding missing weight values...', [driver]), audit)


def update_status(args):
    ancestors = parse_ids(args.ids)
    store = get_store(args)
    query = Query('node', type='islandora_object', field_member_of__exists=True)
    processor = UpdateStatusProcessor(store, dry_run=args.dry_run, ancestors=ancestors,
                                      publish=args.publish)
    audit = open_audit(args)
    driver = BatchDriver(CursorIterator(store, query, args.page_size), processor, audit)
    run_batch(args, Batch('Updating status of all nodes and media belonging to passed NIDs.',
                          [driver]), audit)


def display_hint_feeder(args):
    store = get_store(args)
    uris = split_csv(args.term_uris)
    models = term_ids(store, 'islandora_models', uris)
    if not models:
        raise ValidationError('No terms found with URIs: %s' % ', '.join(uris))
    nids = list(iter_ids(store, Query('node', field_model__in=models)))
    if not nids:
        raise ValidationError('No applicable nodes found.')
    for nid in nids:
        args.stdout.write('%s\n' % nid)


def update_display_hints(args):
    store = get_store(args)
    hints = term_ids(store, 'islandora_display', [args.term_uri])
    if not hints:
        raise ValidationError('No terms found with URI: %s' % args.term_uri)
    nids = [row[0].strip() for row in csv.reader(args.stdin) if row and row[0].strip()]
    processor = SetFieldProcessor(store, dry_run=args.dry_run, field='field_display_hints',
                                  value=hints[0])
    audit = open_audit(args)
    driver = BatchDriver(CursorIterator(IdListSource(nids), None, args.page_size),
                         processor, audit)
    run_batch(args, Batch('Updating display hints', [driver]), audit)


def repair_references(args):
    store = get_store(args)
    repairs = []
    for row in csv.reader(args.stdin):
        if not row or row[0] == 'entity_type':
            continue
        if len(row) < 5:
            raise ValidationError('Expected entity type, field, target id, count and ids; got %r' % row)
        entity_type, field, target_id = row[0], row[1], row[2]
        ids = [i.strip() for i in ','.join(row[4:]).split(',') if i.strip()]
        logger.debug('Repairing %(count)s reference(s) to %(target)s in %(type)s.%(field)s.',
                     {'count': row[3], 'target': target_id, 'type': entity_type, 'field': field})
        processor = RepairReferenceProcessor(store, dry_run=args.dry_run, field=field,
                                             target_id=target_id, entity_type=entity_type)
        repairs.append((processor, ids))
    if not repairs:
        logger.info('No references to repair.')
        return
    audit = open_audit(args)
    operations = [BatchDriver(CursorIterator(IdListSource(ids), None, args.page_size),
                              processor, audit)
                  for processor, ids in repairs]
    run_batch(args, Batch('Repairing references', operations), audit)


def enqueue(args):
    if not args.queue_db:
        raise ValidationError('Queues that outlive the command require --queue-db')
    queues = get_queues(args)
    queues.create_queue(args.name)
    ids = parse_ids(args.ids)
    for id in ids:
        queues.enqueue(args.name, {'id': normalize_id(id)})
    logger.info('Enqueued %(count)d item(s) to %(name)s.', {'count': len(ids), 'name': args.name})


def queue_run(args):
    if not args.queue_db:
        raise ValidationError('Running a queue requires --queue-db')
    store = get_store(args)
    try:
        processor = get_processor(args.processor, store, dry_run=args.dry_run)
    except ValueError as err:
        raise ValidationError(str(err))
    runner = QueueRunner(get_queues(args), processor,
                         items_per_iteration=args.items_per_iteration,
                         time_per_iteration=args.time_per_iteration,
                         progress=get_progress(args, args.name))
    audit = open_audit(args)
    try:
        report([runner.run(args.name, audit)], audit)
    finally:
        if audit is not None:
            audit.close()


def get_parser():
    parser = argparse.ArgumentParser(prog='eulbatch', description='''Resumable batch
    maintenance operations for an Islandora repository site.''')
    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    subparsers.required = True

    common = argparse.ArgumentParser(add_help=False)
    # site connection options
    site_args = common.add_argument_group('Repository site connection options')
    site_args.add_argument('--site-root', dest='site_root', default=None,
                           help='URL for the repository site, e.g. https://repo.example.edu/')
    site_args.add_argument('--site-user', dest='site_user', default=None,
                           help='Site username (requires permission to edit content)')
    site_args.add_argument('--site-password', dest='site_password', metavar='PASSWORD',
                           default=None, nargs='?', action=PasswordAction,
                           help='Password for the specified user (leave blank to be prompted)')
    # general batch options
    batch_args = common.add_argument_group('Batch options')
    batch_args.add_argument('--dry-run', dest='dry_run', action='store_true', default=False,
                            help='Log the changes that would be made without making them')
    batch_args.add_argument('--page-size', dest='page_size', type=int, default=None,
                            help='Number of records to process per invocation '
                                 '(default: %d)' % DEFAULT_PAGE_SIZE)
    batch_args.add_argument('--queue-db', dest='queue_db', default=None,
                            help='SQLite database file for queues (default: in memory)')
    batch_args.add_argument('--csv-file', dest='csv_file', default=None,
                            help='Output results to the specified CSV file')
    batch_args.add_argument('--state-file', dest='state_file', default=None,
                            help='Checkpoint progress to the specified file, resuming from it if present')
    batch_args.add_argument('--progress', dest='progress', action='store_true', default=False,
                            help='Display a progress bar')
    batch_args.add_argument('--verbose', '-v', dest='verbose', action='store_true', default=False,
                            help='Log debug output')
    batch_args.add_argument('--quiet', '-q', dest='quiet', action='store_true', default=False,
                            help='Only log warnings and errors')

    cmd = subparsers.add_parser('delete-recursively', parents=[common],
                                help='Delete nodes with all of their descendants and media')
    cmd.add_argument('ids', metavar='IDS',
                     help='comma separated node ids, or a file with one id per line')
    cmd.add_argument('--empty', action='store_true', default=False,
                     help='Keep the specified nodes; only delete their descendants')
    cmd.set_defaults(func=delete_recursively)

    cmd = subparsers.add_parser('rederive', parents=[common],
                                help='Re-run derivative reactions for all source media')
    cmd.add_argument('--source-uri', dest='source_uri', default=ORIGINAL_FILE_URI,
                     help='Media use uri of the source media (default: %(default)s)')
    cmd.set_defaults(func=rederive)

    cmd = subparsers.add_parser('generate-derivatives', parents=[common],
                                help='Generate a derivative for nodes that do not have one')
    cmd.add_argument('--nids', default=None,
                     help='comma separated node ids, or a file with one id per line')
    cmd.add_argument('--model-uri', dest='model_uri', default=None,
                     help='comma separated model term uris')
    cmd.add_argument('--model-name', dest='model_name', default=None,
                     help='comma separated model term names')
    cmd.add_argument('--media-use-uri', dest='media_use_uri', default=THUMBNAIL_URI,
                     help='Media use uri of the derivative (default: %(default)s)')
    cmd.add_argument('--source-uri', dest='source_uri', default=ORIGINAL_FILE_URI,
                     help='Media use uri of the source media (default: %(default)s)')
    cmd.set_defaults(func=generate_derivatives)

    cmd = subparsers.add_parser('missing-derivatives', parents=[common],
                                help='Report nodes with missing derivatives')
    cmd.add_argument('--source-uri', dest='source_uri', default=ORIGINAL_FILE_URI,
                     help='Media use uri of the source media (default: %(default)s)')
    cmd.add_argument('--derivative-uris', dest='derivative_uris',
                     default='%s,%s' % (SERVICE_FILE_URI, THUMBNAIL_URI),
                     help='comma separated media use uris of the expected derivatives '
                          '(default: %(default)s)')
    cmd.set_defaults(func=missing_derivatives)

    cmd = subparsers.add_parser('null-child-weight-updater', parents=[common],
                                help='Add weights to the unweighted children of a node')
    cmd.add_argument('parent', metavar='PARENT', help='node id of the parent')
    cmd.set_defaults(func=null_child_weight_updater)

    cmd = subparsers.add_parser('update-status', parents=[common],
                                help='Publish or unpublish all descendants of nodes, with their media')
    cmd.add_argument('ids', metavar='IDS',
                     help='comma separated ancestor node ids, or a file with one id per line')
    cmd.add_argument('--publish', action='store_true', default=False,
                     help='Publish (default: unpublish)')
    cmd.add_argument('--batch-size', dest='batch_size', type=int, default=None,
                     help='Another name for --page-size (default: %d)' % STATUS_PAGE_SIZE)
    cmd.set_defaults(func=update_status, default_page_size=STATUS_PAGE_SIZE)

    cmd = subparsers.add_parser('display-hint-feeder', parents=[common],
                                help='List the ids of nodes with the given models')
    cmd.add_argument('--term-uris', dest='term_uris', default=BOOK_MODEL_URI,
                     help='comma separated model term uris (default: %(default)s)')
    cmd.set_defaults(func=display_hint_feeder)

    cmd = subparsers.add_parser('update-display-hints', parents=[common],
                                help='Set the display hint of the nodes listed on stdin')
    cmd.add_argument('--term-uri', dest='term_uri', default=MIRADOR_DISPLAY_URI,
                     help='display hint term uri (default: %(default)s)')
    cmd.set_defaults(func=update_display_hints)

    cmd = subparsers.add_parser('repair-references', parents=[common],
                                help='Remove repeated references, as listed in csv on stdin')
    cmd.set_defaults(func=repair_references)

    cmd = subparsers.add_parser('enqueue', parents=[common],
                                help='Add record ids to a named queue')
    cmd.add_argument('name', metavar='NAME', help='queue name')
    cmd.add_argument('ids', metavar='IDS',
                     help='comma separated ids, or a file with one id per line')
    cmd.set_defaults(func=enqueue)

    cmd = subparsers.add_parser('queue-run', parents=[common],
                                help='Process every item of a named queue')
    cmd.add_argument('name', metavar='NAME', help='queue name')
    cmd.add_argument('--processor', required=True, choices=sorted(PROCESSORS),
                     help='item processor to run on each queued id')
    cmd.add_argument('--items-per-iteration', dest='items_per_iteration', type=int, default=100,
                     help='Maximum items per invocation (default: %(default)s)')
    cmd.add_argument('--time-per-iteration', dest='time_per_iteration', type=int, default=300,
                     help='Time limit in seconds per invocation (default: %(default)s)')
    cmd.set_defaults(func=queue_run)

    return parser


def main(argv=None, stdin=None, stdout=None):
    args = get_parser().parse_args(argv)
    args.stdin = stdin or sys.stdin
    args.stdout = stdout or sys.stdout

    if args.verbose:
        configure_logging('DEBUG')
    elif args.quiet:
        configure_logging('WARNING')
    else:
        configure_logging('INFO')

    # --batch-size is only an option of update-status
    batch_size = getattr(args, 'batch_size', None)
    if batch_size is not None:
        if args.page_size is not None:
            logger.error('--batch-size is another name for --page-size; pass only one of them')
            return EXIT_INVALID
        args.page_size = batch_size
    if args.page_size is None:
        args.page_size = getattr(args, 'default_page_size', DEFAULT_PAGE_SIZE)
    if args.page_size < 1:
        logger.error('Page size must be at least 1')
        return EXIT_INVALID

    try:
        args.func(args)
    except ValidationError as err:
        logger.error('%s', err)
        return EXIT_INVALID
    except (RequestFailed, requests.exceptions.RequestException, sqlite3.Error) as err:
        logger.error('%s', err)
        return EXIT_FAILED
    return EXIT_OK
