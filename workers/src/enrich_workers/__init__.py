"""Unified worker runner for all Temporal components.

Every worker process runs the same image with a different component name to
select which component's workflows/activities to expose on that worker.
"""
