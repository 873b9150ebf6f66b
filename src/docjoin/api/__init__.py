"""REST API for docjoin."""
