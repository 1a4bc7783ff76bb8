"""Module defining various global constants."""

# tsfs version
VERSION = "1.0.0"

# URI scheme of the virtual file system: ts://{tailnet}/{host}/{path}
SCHEME = "ts"

# Path segment that refers to the remote user's home directory in a URI, and the
# connection-relative path it is normalized to.
HOME_MARKER = "~"
HOME_RELATIVE = "."

# Default time allowed for connecting and authenticating to a host.
DEFAULT_CONNECTION_TIMEOUT_MS = 10000

# Maximum number of symbolic links followed while classifying a single entry.
MAX_SYMLINK_DEPTH = 16

# Size of the chunks used to stream uploads.
UPLOAD_CHUNK_SIZE = 64 * 1024

# Special exit code for when tsfs itself fails.
TSFS_ERROR_CODE = 254
