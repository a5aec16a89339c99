"""HTTP API for the CV assistant."""
