"""
Order domain: pricing, payment checks, persistence, lifecycle, checkout and tracking.
"""
