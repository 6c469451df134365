"""
Weave — package a directory tree into deployable tar artifacts.

Features:

- One shared base archive plus one archive per named configuration.
- Configuration archives are spliced: the base archive's bytes are copied
  verbatim, its end-of-archive marker is overwritten, and only the
  configuration's own files are encoded.
- Exact byte offsets for every entry written (see weave.writer.ArchiveIndex).
- gzip compression, key-file encryption (XChaCha20-Poly1305 with an Argon2id
  derived key), S3 upload and ETag-aware download/extract.

Engine operations (build_archive, splice_archive, compress_archive) return a
weave.result.Outcome instead of printing; the CLI decides what to show.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "writer",
    "builder",
    "splice",
    "compress",
    "encryption",
    "pipeline",
]

# Importable programmatic API is available via weave.builder/weave.splice and
# the CLI functions in weave.cli (cmd_build/cmd_extract) which take normal parameters.
