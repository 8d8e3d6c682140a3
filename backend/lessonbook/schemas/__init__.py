"""Request and response schemas for the public API."""
