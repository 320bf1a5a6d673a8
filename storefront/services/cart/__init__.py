"""
Server-side cart storage and operations.
"""
