"""Discord cogs for the fast travel map."""
