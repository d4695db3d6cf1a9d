"""Configuration module."""
from .settings import Config, DutyMappings

__all__ = ['Config', 'DutyMappings']
