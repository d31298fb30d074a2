"""Request and response schemas for the approval flow API."""
