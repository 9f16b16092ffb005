"""
Idle Guild: game-economy simulation and battle resolution engine for a
chat-bot idle guild game.
"""

__version__ = "1.0.0"
