"""Upstream HTTP access, block detection, retries and post sources."""
