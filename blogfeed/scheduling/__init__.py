"""Background cache refresh scheduling."""
