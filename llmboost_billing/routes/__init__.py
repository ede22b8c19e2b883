from .billing_routes import bp as billing_bp

__all__ = ["billing_bp"]
