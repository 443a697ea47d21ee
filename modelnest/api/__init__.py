"""HTTP API for ModelNest deployments."""
