"""Infrastructure layer: the persistent store shared by all handler groups."""
