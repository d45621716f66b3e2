from .cleanup_job import start_nonce_cleanup_job

__all__ = ['start_nonce_cleanup_job']
