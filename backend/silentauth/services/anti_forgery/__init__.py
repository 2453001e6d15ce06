from .service import AntiForgeryMode, AntiForgeryService, AntiForgeryTokenOut

__all__ = ["AntiForgeryMode", "AntiForgeryService", "AntiForgeryTokenOut"]
