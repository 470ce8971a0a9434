"""Artifact container codec: framing, reader, writer and repack pipeline."""
