from .models import Check
from .repository import CheckRepository, InMemoryCheckRepository

__all__ = [
    'Check',
    'CheckRepository',
    'InMemoryCheckRepository',
]
