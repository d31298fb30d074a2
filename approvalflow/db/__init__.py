"""Database layer for the approval flow engine."""
