"""Batch pipeline steps for the provider service backfill.

Each step is callable on its own: legacy resolution and normalization are
pure, ingest holds the database reads and writes, backfill drives the run.
"""
