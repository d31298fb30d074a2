"""HTTP API for the approval flow engine."""
