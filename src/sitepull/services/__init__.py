"""
sitepull services.

- export: cursor-driven database export (server side)
- manifest: file manifests, job storage and partitioning
- download: concurrent retrieval (client side)
"""
