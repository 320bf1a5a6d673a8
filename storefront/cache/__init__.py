"""
Redis cache package.
"""
