"""
themekit - Asset build pipeline for WordPress themes.

Compiles SASS, LESS and Stylus variants into one stylesheet per variant,
builds first-party scripts, copies fonts, images and script libraries, and
rebuilds on change with optional live reload.
"""

__version__ = "0.1.0"
