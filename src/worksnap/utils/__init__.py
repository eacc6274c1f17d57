"""
Shared utilities for worksnap: logging, errors, configuration, events, validation.
"""
