from .nonce import AuthNonce

__all__ = ['AuthNonce']
