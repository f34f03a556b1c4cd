"""Relational storage and history layer.

This package persists current entity state and append-only document
history in SQLite, and exposes them through the SDK.
"""
