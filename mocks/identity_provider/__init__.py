"""Mock Google-style identity provider."""
