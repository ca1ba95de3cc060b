"""Service layer: deployment logic and its AWS collaborators."""
