"""Persistence schema for the idle guild game."""
