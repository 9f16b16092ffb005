"""
Prestige Module
===============

Domain: prestige eligibility, reset, permanent prestige bonuses and the
prestige-point shop.

- engine / bonuses: pure functions
- service.PrestigeService: reset, auto-prestige, shop purchases
"""
