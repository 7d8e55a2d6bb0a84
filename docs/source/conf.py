# Configuration file for the Sphinx documentation builder.
#
# For the full list of built-in configuration values, see the documentation:
# https://www.sphinx-doc.org/en/master/usage/configuration.html

# add project root to sys.path for autodoc
import datetime
import os
import sys

sys.path.insert(0, os.path.abspath('../..'))

import ExpenseSync

# -- Project information -----------------------------------------------------
# https://www.sphinx-doc.org/en/master/usage/configuration.html#project-information

project = 'ExpenseSync'
copyright = f'{datetime.date.today().year}, Gergely Wootsch'
author = ExpenseSync.__author__
release = ExpenseSync.__version__

# -- General configuration ---------------------------------------------------
# https://www.sphinx-doc.org/en/master/usage/configuration.html#general-configuration

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.viewcode',
    'sphinx.ext.autosectionlabel',
]

napoleon_google_docstring = True
napoleon_use_param = False
napoleon_use_ivar = False

# Qt modules cannot be imported on a headless docs builder without a platform
os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')

templates_path = ['_templates']
exclude_patterns = []

autodoc_default_options = {
    'member-order': 'groupwise',
    'show-inheritance': True,
}
autodoc_preserve_defaults = True

# -- Options for HTML output -------------------------------------------------
# https://www.sphinx-doc.org/en/master/usage/configuration.html#options-for-html-output

html_theme = 'furo'
html_theme_options = {
    "light_css_variables": {
        "color-brand-primary": "rgba(75, 180, 135, 1)",
        "color-brand-content": "rgba(75, 180, 135, 1)",
    },
    "dark_css_variables": {
        "color-brand-primary": "rgba(90, 200, 155, 1)",
        "color-brand-content": "rgba(90, 200, 155, 1)",
    },
    "navigation_with_keys": True,
}
highlight_language = "python"

html_static_path = []
