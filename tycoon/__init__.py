"""Simulation core for an idle business tycoon game."""
from tycoon.app import create_session
from tycoon.game_manager import GameSession

__version__ = '0.4.0'

__all__ = ['create_session', 'GameSession']
