"""bucketgate application package."""
