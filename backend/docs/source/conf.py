import pathlib
import sys

# backend/ holds the geofeatures package
sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[2]))

project = 'Map Features API'
release = '0.1.0'

templates_path = ['_templates']
exclude_patterns = ['.venv', 'venv', '.pytest_cache', '.mypy_cache']

html_theme = 'sphinx_rtd_theme'
html_static_path = ['_static']

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.autosummary',
    'sphinx.ext.viewcode',
    'sphinx_autodoc_typehints',
    'myst_parser',
]

autosummary_generate = True

napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_use_param = True

autodoc_default_options = {
    'members': True,
    'show-inheritance': True,
}

source_suffix = {
    '.rst': 'restructuredtext',
    '.md': 'markdown',
}
