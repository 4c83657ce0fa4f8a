"""
Resource cache application package.
"""
