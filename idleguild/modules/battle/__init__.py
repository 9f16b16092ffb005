"""
Battle Module
=============

Domain: wagered guild battles, consent challenges, cooldowns and revenge.

- engine / cooldowns: pure rules
- challenge: in-memory pending challenge store
- service.BattleService: resolution, escrow, revenge
"""
