"""Configuration settings for the simulation core."""
import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Base configuration."""
    SAVE_DATABASE_URI = os.environ.get('TYCOON_SAVE_DATABASE_URI') or \
        os.environ.get('DATABASE_URL') or \
        'sqlite:///tycoon_save.db'  # Use SQLite for development
    SAVE_SLOT_KEY = 'autosave'
    EMERGENCY_SAVE_KEY = 'emergency_save'

    # Game loop: fixed simulation step, independent of frame rate
    TICK_MS = 100
    AUTO_SAVE_INTERVAL_MS = 30_000

    # Offline progress
    MAX_OFFLINE_MS = 8 * 60 * 60 * 1000  # 8 hours
    MIN_OFFLINE_MS = 60_000  # gaps shorter than this are ignored
    OFFLINE_EFFICIENCY = 0.5  # base rate, raised by offline upgrades up to 1.0
    OFFLINE_MODE = os.environ.get('TYCOON_OFFLINE_MODE', 'estimate')  # 'estimate' or 'replay'
    OFFLINE_REPLAY_STEP_MS = 1000
    OFFLINE_RESEARCH_POINTS_PER_SEC = 0.1  # 1 RP per 10 seconds while research is running

    # Research points trickle while the game is open
    RESEARCH_POINTS_PER_SEC = 0.1

    # Bottlenecks
    BOTTLENECK_CHECK_INTERVAL_MS = 5000
    BOTTLENECK_FLOOR = 0.10  # speed never drops below 10%

    # Treasury
    TREASURY_PRICE_INTERVAL_MS = 1000
    SAVINGS_APY = 0.05

    # Economy
    STARTING_CASH = 25
    PRESTIGE_REVENUE_PER_POINT = 0.03  # +3% revenue per colony tech point

class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True

class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False

class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    SAVE_DATABASE_URI = 'sqlite:///:memory:'
    OFFLINE_MODE = 'estimate'

config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
