"""Pure domain value objects for the controller kernel. Zero I/O."""
