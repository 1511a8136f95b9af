"""Project media module: upload, listing and the deletion cascade."""
