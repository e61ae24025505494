"""
Background workers
"""
