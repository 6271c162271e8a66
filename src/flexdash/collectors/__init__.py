"""Collectors package for Flex metrics.

Each collector module provides an async fetch function and a
generate_metrics function that can be composed with the FlexCollector class.
"""
