"""Middleware package for FastAPI application"""
from app.middleware.logging_middleware import RequestLoggingMiddleware

__all__ = ['RequestLoggingMiddleware']
