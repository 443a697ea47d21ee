"""Version 1 of the deployment API."""
