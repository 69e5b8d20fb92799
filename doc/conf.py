# eulbatch documentation build configuration file

import eulbatch

extensions = ['sphinx.ext.autodoc', 'sphinx.ext.intersphinx']

exclude_patterns = ['build']
source_suffix = '.rst'
master_doc = 'index'

project = 'eulbatch'
copyright = '2026, Emory University Libraries'
version = '%d.%d' % eulbatch.__version_info__[:2]
release = eulbatch.__version__
modindex_common_prefix = ['eulbatch.']

pygments_style = 'sphinx'

htmlhelp_basename = 'eulbatch'

html_theme = 'alabaster'
html_theme_options = {
    'github_user': 'emory-libraries',
    'github_repo': 'eulbatch',
    'description': 'Resumable batch maintenance for Islandora repository sites',
}

latex_documents = [
  ('index', 'eulbatch.tex', 'eulbatch Documentation',
   'Emory University Libraries', 'manual'),
]

# configuration for intersphinx: refer to the Python standard library and requests
intersphinx_mapping = {
    'python': ('https://docs.python.org/3/', None),
    'requests': ('https://requests.readthedocs.io/en/latest/', None),
}
