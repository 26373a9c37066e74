"""Metric primitives (counters, gauges, descriptors, collectors) and a client for the Prometheus HTTP API v1."""

__version__ = "0.1.0"