"""Shared infrastructure for the enrichment pipeline engine.

Provides the Temporal client connection factory, task queue constants,
error taxonomy, and the Pydantic contract models used across all components.
"""
