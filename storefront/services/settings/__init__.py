"""
Store settings loading and caching.
"""
