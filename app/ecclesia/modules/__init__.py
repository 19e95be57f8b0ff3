"""Feature modules: organizations and locations, accounts, areas."""
