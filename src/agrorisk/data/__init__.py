"""Input contracts and loaders."""
