"""Ludo Arena match room service."""
