"""
Shared helpers

- serialization: protobuf <-> dict/JSON, OTLP/JSON encoding
"""
