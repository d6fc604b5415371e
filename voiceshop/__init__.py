"""Voice-commerce backend: intent classification, catalog lookup, and cart state."""
