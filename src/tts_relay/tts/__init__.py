"""
Backend protocol and cache building blocks.

    - protocol.py: websocket session with the read-aloud backend
    - frames.py: frame encoding and strict header parsing
    - endpoint.py: signed connection URL and handshake headers
    - ssml.py: SSML document generation
    - errors.py: TransportError / ProtocolError
    - cache.py: fast tier (Redis, in-process LRU, or off)
    - persistence.py: durable SQLite index
    - storage.py: content-addressed audio files and the age sweep
    - concurrency.py: coalescing of identical in-flight syntheses
"""
