"""
Notification Module
===================

Domain: per-guild DM preferences, soft-failure counting and battle alerts.
"""
