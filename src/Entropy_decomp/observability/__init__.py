"""Prometheus metrics for pipeline stages, agents and adapters."""
