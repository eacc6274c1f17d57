"""
Shared test fixtures for worksnap.
"""
