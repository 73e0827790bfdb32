from .relay_config import RelayConfig, DEFAULT_JWT_SECRET

__all__ = ["RelayConfig", "DEFAULT_JWT_SECRET"]
