"""
Streamchain HTTP Server
=======================

Usage:
    from streamchain.serve import create_app

    app = create_app(Settings.from_env(), store=my_store)

Run the bundled server with: python -m streamchain.serve
"""

from .app import ChatRequest, MessageIn, create_app, prime_stream

__all__ = ["ChatRequest", "MessageIn", "create_app", "prime_stream"]
