"""Configuration loading and validation."""

from .config import Config

__all__ = ['Config']
