"""
Provider adapters
"""
