"""Celery application and background jobs."""
