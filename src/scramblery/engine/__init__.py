"""Pixel buffers, regions and the effect execution engine."""
