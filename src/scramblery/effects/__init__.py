"""Obfuscation effects and their registry."""
