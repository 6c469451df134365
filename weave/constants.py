# Tar stream layout
BLOCK_SIZE = 512
END_MARKER_BLOCKS = 2
END_MARKER_SIZE = BLOCK_SIZE * END_MARKER_BLOCKS

# Every entry is stored with the same permission bits
ENTRY_MODE = 0o775

# Copy buffer for file content and raw archive copies; output does not depend on it
DEFAULT_CHUNK_SIZE = 64 * 1024

# Working file suffixes
TAR_SUFFIX = ".tar"
GZIP_SUFFIX = ".gz"
ENCRYPTED_SUFFIX = ".enc"

BASE_NAME = "base"
ETAG_FILENAME = ".weave.etag"
DEFAULT_WORKING_DIR = ".weave"
