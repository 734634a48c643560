"""
Version import for the SecureBot backend.

Single source of truth: securebot/_version.py
"""

from securebot._version import __version__, __release_date__
