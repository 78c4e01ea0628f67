"""Backend pieces of the SVG converter service.

Route handlers in server.py stay thin; this package holds:
- the two-directory file store (uploads/, converted/) and its TTL sweeper
- the converter child-process wrapper and the remote fetcher
- the api-key access gate and content-type intake checks

Stored names are ``<uuid4>-<original name>``. The uuid keeps concurrent uploads
apart; the suffix keeps the extension for content-type inference. Never log
tokens or expose filesystem paths in responses.
"""
