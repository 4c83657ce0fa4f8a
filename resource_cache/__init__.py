"""
Scoped, keyed async resource cache with in-flight request deduplication.
"""
