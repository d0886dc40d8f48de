"""Pure value objects and the injectable clock.  ZERO I/O."""
