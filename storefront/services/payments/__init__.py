"""
Payment provider integration.
"""
