"""
Login service application package.

Wires the authorization redirect and the callback pipeline (code exchange,
ID token verification, profile fetch) into a FastAPI app via `main.py`.
"""
