"""Domain layer - settings and business models."""
