"""Celery tasks run by the PayBridge worker."""
