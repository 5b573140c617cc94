"""Built-in effects (fx.* namespace)."""
