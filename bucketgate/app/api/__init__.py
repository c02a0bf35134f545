"""API routers for bucketgate."""
