"""
Guild Module
============

Domain: guild founding, lookup and row-level repositories.

Exports (import from submodules):
- service.GuildService
- repository.GuildRepository / GuildUpgradeRepository / GuildPrestigeUpgradeRepository
"""
