"""Classroom attendance service with remote/local dual persistence."""
