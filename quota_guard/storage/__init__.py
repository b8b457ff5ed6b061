"""
Storage layer for quota records.
"""
