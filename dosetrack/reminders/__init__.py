"""Notification pipeline (channels, dispatcher, delivery log, scheduler, Celery worker).

Runs as a separate worker process driven by Celery beat; the HTTP API exposes
the same sweeps for manual or external triggering.
"""
