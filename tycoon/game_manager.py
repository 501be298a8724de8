"""Game session: owns the live state and wires the subsystems together."""
import logging
import time

from tycoon.bottlenecks import BottleneckEngine
from tycoon.buffs import add_buff
from tycoon.config import Config
from tycoon.contracts import ContractBoard
from tycoon.events import BUFF_ADDED, STATE_CHANGED, EventBus, make_event
from tycoon.game_loop import GameLoop
from tycoon.modifiers import ModifierResolver
from tycoon.offline import OfflineCalculator
from tycoon.persistence import export_save, import_save
from tycoon.prestige import PrestigeSystem
from tycoon.production import ProductionEngine
from tycoon.random_events import RandomEventSystem
from tycoon.research import ResearchSystem
from tycoon.state import create_initial_state
from tycoon.treasury import Treasury
from tycoon.upgrades import UpgradeSystem
from tycoon.workers import WorkerSystem

logger = logging.getLogger(__name__)


def wall_clock_ms():
    return time.time() * 1000


class GameSession:
    """One play session: load, offline catch-up, fixed-step loop, autosave."""

    def __init__(self, data_loader, save_manager, event_bus=None, config=None,
                 clock=None, loop=None):
        """Initialize the session.

        Args:
            data_loader: GameDataLoader with static content.
            save_manager: SaveManager for the autosave slot.
            event_bus: EventBus shared with the UI; a new one when omitted.
            config: Config class.
            clock: Callable returning wall-clock milliseconds.
            loop: GameLoop driving fixed steps.
        """
        self.config = config or Config
        self.data_loader = data_loader
        self.event_bus = event_bus or EventBus()
        self.save_manager = save_manager
        self.clock = clock or wall_clock_ms
        self.loop = loop or GameLoop(self.config.TICK_MS)

        self.bottlenecks = BottleneckEngine(data_loader, self.config, self.event_bus)
        self.modifiers = ModifierResolver(data_loader, self.bottlenecks, self.config)
        self.research = ResearchSystem(data_loader, self.event_bus)
        self.production = ProductionEngine(
            data_loader, self.config, self.event_bus,
            bottleneck_engine=self.bottlenecks,
            modifier_resolver=self.modifiers,
            research_system=self.research,
        )
        self.upgrades = UpgradeSystem(data_loader, self.event_bus)
        self.prestige_system = PrestigeSystem(data_loader, self.config, self.event_bus)
        self.workers = WorkerSystem(data_loader)
        self.treasury = Treasury(data_loader, self.config)
        self.contracts = ContractBoard(data_loader, self.production, self.event_bus)
        self.random_events = RandomEventSystem(data_loader, self.event_bus)
        self.offline = OfflineCalculator(data_loader, self.production, self.config)

        self.state = None
        self.initialized = False
        self._autosave_ms = 0.0
        self._unsubscribe_tick = None

    # Lifecycle

    def init(self):
        """Load or create the state, apply offline progress and start the loop.

        Returns:
            Dict with 'is_new_game', 'load_status' and 'offline_report'.
        """
        if self.initialized:
            return {'is_new_game': False, 'load_status': 'running', 'offline_report': None}

        now = self.clock()
        state, status = self.save_manager.load()
        is_new_game = state is None
        offline_report = None

        if is_new_game:
            state = create_initial_state(self.data_loader, self.config, now_ms=now,
                                         seed=int(now) & 0xFFFFFFFF)
            logger.info(f"Starting new game ({status} save)")
        else:
            gap_ms = now - state.get('last_played', now)
            offline_report = self.offline.calculate(state, gap_ms)
            self.offline.apply_report(state, offline_report, self.event_bus)

        state['last_played'] = now
        state['stats']['sessions_played'] += 1
        self.state = state

        self.treasury.ensure_prices(state)
        self.production.recompute_power(state)
        self.contracts.attach(self.event_bus, lambda: self.state)

        self._autosave_ms = 0.0
        self._unsubscribe_tick = self.loop.on_tick(self._on_tick)
        self.loop.start()
        self.initialized = True
        return {'is_new_game': is_new_game, 'load_status': status, 'offline_report': offline_report}

    def shutdown(self):
        """Stop the loop and write final snapshots."""
        if not self.initialized:
            return
        self.loop.stop()
        if self._unsubscribe_tick:
            self._unsubscribe_tick()
            self._unsubscribe_tick = None
        self.contracts.detach()

        now = self.clock()
        self.save_manager.emergency_save(self.state, now)
        self.save_manager.flush()
        self.save_manager.save(self.state, now)
        self.initialized = False

    def close(self):
        """Shut down and release the save worker."""
        self.shutdown()
        self.save_manager.close()

    # Driving

    def _on_tick(self, step_ms):
        state = self.state
        events = self.production.tick(state, step_ms, publish=False)
        self.treasury.tick(state, step_ms)
        self.contracts.tick(state, step_ms)
        self.random_events.tick(state, step_ms)
        self.event_bus.publish_all(events)

        self._autosave_ms += step_ms
        if self._autosave_ms >= self.config.AUTO_SAVE_INTERVAL_MS:
            self._autosave_ms = 0.0
            self.autosave()
        self.save_manager.poll()

    def advance(self, frame_ms):
        """Feed frame time into the fixed-step loop. Returns steps run."""
        return self.loop.advance(frame_ms)

    def pump(self):
        return self.loop.pump()

    def pause(self):
        self.loop.stop()

    def resume(self):
        if self.initialized:
            self.loop.start()

    # Saving

    def autosave(self):
        """Queue a background save of the current state."""
        income = self.production.total_income_per_sec(self.state)
        stats = self.state['stats']
        stats['highest_income_per_sec'] = max(stats['highest_income_per_sec'], income)
        return self.save_manager.save_async(self.state, self.clock())

    def save_now(self):
        return self.save_manager.save(self.state, self.clock())

    def on_visibility_hidden(self):
        """The host window lost visibility: save without waiting."""
        if self.initialized:
            self.autosave()

    def on_teardown(self):
        """Process is going away: synchronous best-effort snapshot only."""
        if self.state is not None:
            self.save_manager.emergency_save(self.state, self.clock())

    def export_save(self):
        return export_save(self.state)

    def import_save(self, encoded):
        """Replace the live state with an exported save. Returns success."""
        state = import_save(encoded, self.data_loader)
        if state is None:
            return False
        self._replace_state(state)
        self.save_now()
        return True

    def hard_reset(self):
        """Delete every save and start over."""
        self.save_manager.delete()
        now = self.clock()
        self._replace_state(create_initial_state(self.data_loader, self.config, now_ms=now,
                                                 seed=int(now) & 0xFFFFFFFF))
        self.save_now()

    def _replace_state(self, state):
        self.state = state
        self._autosave_ms = 0.0
        self.treasury.ensure_prices(state)
        self.production.recompute_power(state)
        self.event_bus.publish(make_event(STATE_CHANGED, clock_ms=state.get('clock_ms', 0.0)))

    # Player actions

    def tap(self, division_id, tier_index):
        return self.production.tap_produce(self.state, division_id, tier_index)

    def start_production(self, division_id, tier_index):
        return self.production.start_production(self.state, division_id, tier_index)

    def buy_tier(self, division_id, tier_index, quantity=1):
        """Buy units. Returns the number bought ('max' buys all affordable)."""
        return self.production.purchase_tier_bulk(self.state, division_id, tier_index, quantity)

    def unlock_tier(self, division_id, tier_index):
        return self.production.unlock_tier(self.state, division_id, tier_index)

    def unlock_division(self, division_id):
        return self.production.unlock_division(self.state, division_id)

    def level_up_tier(self, division_id, tier_index):
        return self.production.level_up_tier(self.state, division_id, tier_index)

    def hire_chief(self, division_id):
        return self.production.hire_chief(self.state, division_id)

    def buy_upgrade(self, upgrade_id):
        return self.upgrades.purchase_upgrade(self.state, upgrade_id)

    def start_research(self, node_id):
        return self.research.start_research(self.state, node_id)

    def resolve_bottleneck(self, division_id, bottleneck_id, path):
        """Resolve an active bottleneck by 'cash', 'research' or 'wait'."""
        handlers = {
            'cash': self.bottlenecks.resolve_with_cash,
            'research': self.bottlenecks.resolve_with_research,
            'wait': self.bottlenecks.start_wait,
        }
        handler = handlers.get(path)
        if handler is None:
            return False
        return handler(self.state, division_id, bottleneck_id)

    def hire_worker(self):
        return self.workers.hire_worker(self.state)

    def allocate_workers(self, division_id, count):
        return self.workers.allocate_workers(self.state, division_id, count)

    def deposit_savings(self, amount):
        return self.treasury.deposit_savings(self.state, amount)

    def withdraw_savings(self, amount):
        return self.treasury.withdraw_savings(self.state, amount)

    def buy_instrument(self, instrument_id, amount):
        return self.treasury.buy(self.state, instrument_id, amount)

    def sell_instrument(self, instrument_id, units):
        return self.treasury.sell(self.state, instrument_id, units)

    def choose_event_option(self, choice_index):
        """Answer the pending random event with the choice at choice_index."""
        return self.random_events.choose(self.state, choice_index)

    def trigger_event(self, event_id):
        """Fire a random event now, e.g. for a seasonal or scripted moment."""
        return self.random_events.trigger(self.state, event_id)

    def grant_buff(self, buff_id, source='external', duration_ms=None):
        """Activate a buff from outside the simulation (seasonal, promotional)."""
        if not add_buff(self.state, self.data_loader, buff_id, source=source, duration_ms=duration_ms):
            return False
        self.event_bus.publish(make_event(BUFF_ADDED, buff=buff_id, source=source))
        return True

    def prestige(self):
        """Launch a new colony. Returns True when the reset happened."""
        new_state, event = self.prestige_system.prestige(self.state, now_ms=self.clock())
        if new_state is None:
            return False
        self._replace_state(new_state)
        self.event_bus.publish(event)
        self.save_now()
        return True

    def prestige_division(self, division_id):
        return self.prestige_system.prestige_division(self.state, division_id)

    # Queries

    def income_per_sec(self, division_id=None):
        if division_id is None:
            return self.production.total_income_per_sec(self.state)
        return self.production.division_income_per_sec(self.state, division_id)
