"""
Configuration loading and component wiring.
"""
