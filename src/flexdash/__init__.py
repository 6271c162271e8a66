"""Flex dashboard toolkit.

Async client for the Flex job-execution service REST API, dashboard view
helpers, and a Prometheus exporter for job and flexlet load.
"""

__version__ = "0.1.0"
