"""Schedule preview rendering (requires matplotlib)."""
