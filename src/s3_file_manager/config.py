"""
Centralized configuration for S3 bucket, region and listing defaults.

Edit these constants to set project defaults. CLI flags and environment
variables will override these values at runtime.
"""

# Default S3 bucket name. You can override via CLI `--bucket` or env `S3_BUCKET_NAME`.
DEFAULT_BUCKET: str = ""

# Default region. You can override via CLI `--region` or env `AWS_REGION`.
DEFAULT_REGION: str | None = None

# Optional S3-compatible endpoint URL (e.g., MinIO, Cloudflare R2, etc.)
# Example: "http://localhost:9000" or "https://accountid.r2.cloudflarestorage.com"
DEFAULT_ENDPOINT_URL: str | None = None

# Whether to use path-style addressing ("https://endpoint/bucket/key")
# Some S3-compatible services require this.
DEFAULT_USE_PATH_STYLE: bool = False

# Page size requested per ListObjectsV2 call.
DEFAULT_MAX_ITEMS: int = 100

# Logging level name; override via `--log-level` or env `LOG_LEVEL`.
DEFAULT_LOG_LEVEL: str = "WARNING"
