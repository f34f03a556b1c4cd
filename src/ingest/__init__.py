"""Snapshot ingestion pipeline.

This package decodes snapshot files, detects changed entities by
fingerprint, and applies changes to the vault in atomic batches.
"""
