"""Backend package: DB models, settings, and the catalog backfill pipeline.

This package reconciles legacy provider onboarding data with the
provider_services catalog.
"""
