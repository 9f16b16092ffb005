"""
Economy Module
==============

Domain: idle earnings, upgrade bonuses, upgrade shop pricing and catalog.

- bonuses / idle_engine / pricing: pure functions
- snapshot: per-guild bonus loading shared by every service
- service.EconomyService: collect, level-ups, purchases
"""
