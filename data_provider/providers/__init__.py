"""
Data provider backends and composition.

This package contains the query-contract backends (local and relational),
the middleware that wraps them, and the factory that selects one at runtime.
"""
