"""Vehicle store backends and the sync audit log."""
