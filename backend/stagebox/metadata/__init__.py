"""Metadata module.

DuckDB-backed storage for the records the primary app keeps about users,
project media and their comments.
"""
