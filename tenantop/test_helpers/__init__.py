"""
Helpers for testing tenantop and code built on it
"""
