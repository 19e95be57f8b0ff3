"""Churches (organizations) and their campuses (locations)."""
