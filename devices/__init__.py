"""Device protocol packages."""
