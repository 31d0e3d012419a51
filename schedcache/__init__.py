"""
schedcache: event cache and synchronization engine for a class schedule viewer.
"""
