# file test_eulbatch/test_progress.py
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

import unittest

from mock import patch

from eulbatch.progress import LoggingProgress, ProgressBarProgress


class ProgressTest(unittest.TestCase):

    def test_logging(self):
        with self.assertLogs('eulbatch.progress', level='DEBUG') as logs:
            LoggingProgress().report(0.25, 'Process node 5')
        self.assertIn('25% complete. Process node 5', logs.output[0])

    @patch('eulbatch.progress.progressbar.ProgressBar')
    def test_progressbar(self, mockprogressbar):
        progress = ProgressBarProgress('Deleting')
        pbar = mockprogressbar.return_value.start.return_value
        progress.report(0.5)
        pbar.update.assert_called_with(50)
        # fractions outside the range are clamped
        progress.report(1.2)
        pbar.update.assert_called_with(100)
        progress.report(-0.1)
        pbar.update.assert_called_with(0)
        progress.finish()
        pbar.finish.assert_called_once_with()

        widgets = mockprogressbar.call_args[1]['widgets']
        self.assertEqual('Deleting: ', widgets[0])
        self.assertEqual(100, mockprogressbar.call_args[1]['max_value'])
