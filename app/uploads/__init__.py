"""
Uploads app: chunked audio upload assembly.

Clients too constrained to send a large file in one request (serverless
body limits, flaky mobile links) split it into chunks. Each chunk is stored
as its own object under a temporary prefix; when the client signals
completion the chunks are reassembled into one durable object, recorded in
the lesson catalog, and the temporary chunks are removed.

Components:
- keys: object key layout for chunks and assembled files
- storage: ChunkStore interface with S3 and local filesystem backends
- services.receiver: stores individual chunks
- services.assembler: completeness check, reconstruction, cleanup
- services.strategies: single-write and multipart reconstruction
- services.recorder: catalog integration for assembled files
- services.streaming: range-aware read proxy for playback
- tasks: Celery maintenance (orphaned chunks, stale multipart uploads)
"""
