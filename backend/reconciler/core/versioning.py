"""
API versioning constants to centralize route prefixes.
"""

API_PREFIX = "/api"
API_VERSION = "v1"
API_V1_PREFIX = f"{API_PREFIX}/{API_VERSION}"
