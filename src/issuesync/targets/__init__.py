"""Target tracker clients."""
