"""
Core utilities shared across the home-care records backend.

This package hosts configuration helpers (env vars, storage paths), the
error taxonomy and the logging bootstrap. Stores, the repository and the
routers depend on these primitives instead of reading os.environ directly.
"""
