"""
Core infrastructure: config, database, cache, auth, tenancy, queue
"""
