"""Session factory: builds a fully wired GameSession from a config name."""
import logging
import os

from tycoon.config import config
from tycoon.events import EventBus
from tycoon.game_data_loader import GameDataLoader, get_game_data_loader
from tycoon.game_manager import GameSession
from tycoon.save_manager import SaveManager, SqlSaveStore

logger = logging.getLogger(__name__)


def create_session(config_name=None, data_dir=None, store=None, event_bus=None, clock=None):
    """Create and configure a game session.

    Args:
        config_name: Key into the config dict; TYCOON_ENV or 'development' when omitted.
        data_dir: Directory of game data JSON files; packaged data when omitted.
        store: Save store; a SqlSaveStore on SAVE_DATABASE_URI when omitted.
        event_bus: EventBus shared with the host UI.
        clock: Wall-clock callable in milliseconds.

    Returns:
        GameSession ready for init().
    """
    # Load configuration
    if config_name is None:
        config_name = os.environ.get('TYCOON_ENV', 'development')
    app_config = config[config_name]

    # Initialize game data loader
    data_loader = GameDataLoader(data_dir) if data_dir else get_game_data_loader()
    errors = data_loader.validate_data()
    if errors:
        logger.warning(f"Game data validation warnings: {errors}")

    if store is None:
        store = SqlSaveStore(app_config.SAVE_DATABASE_URI)
    event_bus = event_bus or EventBus()
    save_manager = SaveManager(store, data_loader, app_config, event_bus)
    return GameSession(data_loader, save_manager, event_bus, app_config, clock=clock)
