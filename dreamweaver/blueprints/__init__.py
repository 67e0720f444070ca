from .health import health_bp
from .usage import usage_bp

__all__ = ['health_bp', 'usage_bp']
