"""
Storefront order lifecycle and checkout service.
"""
