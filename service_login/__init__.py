"""OIDC login service: authorization redirect and callback handling."""
