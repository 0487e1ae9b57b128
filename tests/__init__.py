"""
Test suite for vSphere Exporter.

Unit tests for the metric registry, property fetcher and hierarchy walker,
and end-to-end polls of the collection orchestrator against an in-memory
inventory.
"""
