"""
Provider payload normalizers:
- identity.py: profile JSON -> CanonicalUserIdentity
- files.py: file-listing JSON -> FileListing
"""

from oauth_gateway.core.oauth.normalizers.files import normalize_files
from oauth_gateway.core.oauth.normalizers.identity import normalize_identity

__all__ = ["normalize_files", "normalize_identity"]
