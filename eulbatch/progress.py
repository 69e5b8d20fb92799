# file eulbatch/progress.py
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

import progressbar


logger = logging.getLogger(__name__)


class ProgressSink(object):
    '''Receives the fraction complete after every batch invocation.'''

    def report(self, fraction, message=None):
        raise NotImplementedError

    def finish(self):
        pass


class LoggingProgress(ProgressSink):
    'Report progress as log messages.'

    def __init__(self, level=logging.DEBUG):
        self.level = level

    def report(self, fraction, message=None):
        logger.log(self.level, '%(percent)d%% complete. %(message)s',
                   {'percent': int(fraction * 100), 'message': message or ''})


class ProgressBarProgress(ProgressSink):
    '''Report progress on a console progress bar.

    :param title: label displayed in front of the bar
    :param max_value: resolution of the bar (default: 100 steps)
    '''

    def __init__(self, title='Progress', max_value=100):
        self.max_value = max_value
        widgets = ['%s: ' % title, progressbar.widgets.Percentage(), ' ',
                   progressbar.widgets.Bar(), ' ', progressbar.widgets.ETA()]
        self.pbar = progressbar.ProgressBar(widgets=widgets,
                                            max_value=max_value).start()

    def report(self, fraction, message=None):
        # live totals can make the fraction move backwards; keep in range
        value = int(round(fraction * self.max_value))
        self.pbar.update(min(max(value, 0), self.max_value))

    def finish(self):
        self.pbar.finish()
