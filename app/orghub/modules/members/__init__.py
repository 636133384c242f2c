"""Organization members (users)."""
