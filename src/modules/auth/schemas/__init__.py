from .auth_schemas import LoginRequest, NonceRequest, NonceResponse, SignerResponse, TokenResponse

__all__ = ['LoginRequest', 'NonceRequest', 'NonceResponse', 'SignerResponse', 'TokenResponse']
