"""Sealpost: key bootstrap and store-and-forward relay."""
