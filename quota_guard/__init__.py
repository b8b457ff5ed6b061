"""
Quota Guard.

Per-account usage quotas over a rolling window, with paid extensions
and a static ban list.
"""

__version__ = "0.1.0"
