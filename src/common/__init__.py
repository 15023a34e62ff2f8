"""
Shared building blocks for the Fusebit add-on handler.

Modules:
- codec: continuation token encoding (base64 JSON, optionally Fernet-sealed)
- errors: error kinds reported to callers and raised by the storage client
- models: continuation state, request and response models
- return_to: returnTo allow-list validation
- config: deployment configuration from env and SSM
"""

__all__ = [
    "codec",
    "config",
    "errors",
    "models",
    "return_to",
]
