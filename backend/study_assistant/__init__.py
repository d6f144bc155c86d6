"""AI Study Assistant backend: document-grounded chat for students."""
