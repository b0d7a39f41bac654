from pathlib import Path

# Configuration file for the Sphinx documentation builder.
#
# For the full list of built-in configuration values, see the documentation:
# https://www.sphinx-doc.org/en/master/usage/configuration.html

# -- Project information -----------------------------------------------------

project = 'Coach-Backend'
copyright = '2025, Ioannis Katoikos'
author = 'Ioannis Katoikos'
release = 'v0.1'

# repo_root = new_docs/source/../../
REPO_ROOT = Path(__file__).resolve().parents[2]

# -- General configuration ---------------------------------------------------

extensions = [
    "autoapi.extension",
    "sphinx.ext.napoleon",        # Google/NumPy docstrings
    "sphinx.ext.viewcode",        # source links
    "sphinx.ext.intersphinx",
    "myst_parser",
]

source_suffix = {
    ".rst": "restructuredtext",
    ".md": "markdown",
}

myst_enable_extensions = [
    "colon_fence",
    "deflist",
]

templates_path = ['_templates']
exclude_patterns = []

language = 'en'

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "sqlalchemy": ("https://docs.sqlalchemy.org/en/20/", None),
}

# ── AutoAPI (Python backend) ────────────────────────────────────────────────
autoapi_type = "python"
autoapi_dirs = [str(REPO_ROOT / "coach_backend")]
autoapi_add_toctree_entry = True
autoapi_python_use_implicit_namespaces = True
autoapi_root = "coach_backend_api"
autoapi_options = [
    "members",
    "undoc-members",
    "show-inheritance",
    "show-module-summary",
]
autoapi_member_order = "bysource"
autoapi_ignore = ["*__pycache__*"]

# ---- Theme ----
html_theme = "sphinx_rtd_theme"
html_title = project

# Napoleon (Google/NumPy docstrings)
napoleon_google_docstring = True
napoleon_numpy_docstring = True
