"""OAuth2 gateway for identity login and drive authorization."""

__version__ = "0.1.0"
