from .site import site_bp
from .auth import auth_bp
from .generation import generation_bp
from .payments import payments_bp
from .admin import admin_bp
from .affiliate import affiliate_bp

__all__ = ['site_bp', 'auth_bp', 'generation_bp', 'payments_bp', 'admin_bp', 'affiliate_bp']
