"""Authorization redirect construction."""

from .redirect_builder import RedirectBuilder, build_authorization_url

__all__ = ["RedirectBuilder", "build_authorization_url"]
