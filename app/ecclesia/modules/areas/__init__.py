"""Ministry areas and their member rosters."""
