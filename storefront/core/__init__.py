"""
Core package: settings, logging, security and shared errors.
"""
