"""Push delivery worker."""
