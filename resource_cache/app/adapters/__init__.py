"""
Adapters that supply data to resource caches.
"""
