"""Database handle, file storage, image files and actions."""
