"""HTTP API for validating and running migrations."""
