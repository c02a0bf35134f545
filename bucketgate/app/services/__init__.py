"""Service layer for bucketgate."""
