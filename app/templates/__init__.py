"""Studio template and ad wireframe catalog."""
