"""Infrastructure layer for files app.

This package contains integrations with external systems:
- Storage backends for uploaded bytes (local filesystem, S3/MinIO/R2)
- Metadata extraction (MIME type, checksum)

Keep infrastructure concerns separate from business logic.
"""
