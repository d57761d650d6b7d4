"""
Streaming functionality for chat replies.

- Incremental byte-to-line decoding
- Frame classification
- Reply accumulation
"""
