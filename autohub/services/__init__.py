"""Email flows built on top of the stores."""
