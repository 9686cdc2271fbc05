"""
HTTP service for the edge gateway.
"""
