"""Static catalog data shared by the models and the backfill."""
