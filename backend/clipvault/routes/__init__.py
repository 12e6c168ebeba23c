"""
HTTP routes.
"""
