"""Source tracker clients."""
