"""Service layer: schema store and entity finder."""
