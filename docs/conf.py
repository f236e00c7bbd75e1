# Configuration file for the Sphinx documentation builder.

# -- Project information -----------------------------------------------------
project = 'Azchroot'
copyright = '2025 The Azchroot Authors'
author = 'The Azchroot Authors'

# -- General configuration ---------------------------------------------------
extensions = [
    'myst_parser',
    'sphinx_copybutton',
]

myst_enable_extensions = [
    "colon_fence",
    "deflist",
    "html_admonition",
    "replacements",
    "smartquotes",
    "substitution",
]

source_suffix = {
    '.rst': 'restructuredtext',
    '.md': 'markdown',
}

exclude_patterns = ['_build', 'Thumbs.db', '.DS_Store']

# -- Options for HTML output -------------------------------------------------
html_theme = 'alabaster'
html_title = 'Azchroot Documentation'
