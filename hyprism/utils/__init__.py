"""Internal utilities for HyPrism."""
