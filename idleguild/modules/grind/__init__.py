"""
Grind Module
============

Domain: active clicking sessions with debounced persistence.
"""
