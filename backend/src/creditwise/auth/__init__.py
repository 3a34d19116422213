"""Authentication (token verification only) and the profile store."""
