"""Configuration constants.

Values here are NOT user-configurable. For configurable values, see models.py.
"""

QUERY_MAX_LIMIT = 10_000
"""Hard cap for the configurable default lookup limit."""

CACHE_SNAPSHOT_VERSION = 1
"""Version stamped into exported cache snapshots."""

NAMESPACE_SEPARATOR = "\\"
"""Separator of qualified namespace names."""

GLOBAL_NAMESPACE = NAMESPACE_SEPARATOR
"""Normalised name of every file's default namespace."""

MB = 1024 * 1024
