"""
Hoster Extraction - Decode primitives and per-hoster pipelines.

This package holds the pure decoding transforms, the extraction
pipelines built from them, the read-only hoster registry and the
built-in stream-provider that ties them to the extension runtime.
"""
