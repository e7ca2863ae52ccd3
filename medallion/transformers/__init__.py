"""Layer-to-layer transformations."""
