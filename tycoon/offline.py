"""Offline progress: credit what automated divisions earned while the game was closed.

Two modes are available:

* 'estimate' (default) uses each division's steady-state income under the
  modifiers in effect at save time. Fast, but it does not see bottlenecks or
  buffs that would have changed during the gap.
* 'replay' runs the tick engine in fixed steps on a scratch copy of the state
  and measures what each division actually earned. Exact with respect to the
  online simulation, at a cost proportional to the gap length.

Both modes produce the same report shape and leave the live state's units
untouched; apply_report() credits the totals in one step.
"""
import copy
import logging
import math

from tycoon.config import Config
from tycoon.events import OFFLINE_APPLIED, PRODUCTION_COMPLETED, make_event
from tycoon.power import calculate_power_balance
from tycoon.state import credit_cash

logger = logging.getLogger(__name__)


def empty_report(duration_ms=0, mode='estimate', efficiency=None):
    """Report for a gap too short to credit. Efficiency defaults to the base rate."""
    if efficiency is None:
        efficiency = Config.OFFLINE_EFFICIENCY
    return {
        'duration_ms': duration_ms,
        'capped_duration_ms': 0,
        'cash_earned': 0.0,
        'research_points_earned': 0,
        'power_generated': 0.0,
        'efficiency': efficiency,
        'mode': mode,
        'division_reports': [],
    }


class OfflineCalculator:
    """Builds and applies offline progress reports."""

    def __init__(self, data_loader, production_engine, config=None):
        self.data_loader = data_loader
        self.production = production_engine
        self.config = config or Config

    def efficiency(self, state):
        """Base offline efficiency plus upgrade bonuses, capped at 1.0."""
        bonus = self.production.modifiers.offline_efficiency_bonus(state)
        return min(self.config.OFFLINE_EFFICIENCY + bonus, 1.0)

    def research_points(self, state, seconds, efficiency):
        """Research points earned over the gap, only while research was running."""
        if not state.get('active_research'):
            return 0
        prestige_mult = self.production.modifiers.prestige_factor(state)
        return math.floor(seconds * self.config.OFFLINE_RESEARCH_POINTS_PER_SEC
                          * prestige_mult * efficiency)

    def calculate(self, state, gap_ms, mode=None):
        """Compute the offline report for a gap.

        Args:
            state: Game state as loaded (not modified).
            gap_ms: Wall-clock milliseconds since the state was last played.
            mode: 'estimate' or 'replay'; the configured mode when omitted.

        Returns:
            Report dict. Gaps shorter than MIN_OFFLINE_MS give an empty report.
        """
        mode = mode or self.config.OFFLINE_MODE
        if gap_ms is None or gap_ms < self.config.MIN_OFFLINE_MS:
            return empty_report(max(0, gap_ms or 0), mode, self.efficiency(state))

        capped_ms = min(gap_ms, self.config.MAX_OFFLINE_MS)
        seconds = capped_ms / 1000
        efficiency = self.efficiency(state)

        if mode == 'replay':
            division_reports = self._replay(state, capped_ms, efficiency)
        else:
            division_reports = self._estimate(state, seconds, efficiency)

        generated, _ = calculate_power_balance(state, self.data_loader)
        report = {
            'duration_ms': gap_ms,
            'capped_duration_ms': capped_ms,
            'cash_earned': sum(r['cash_earned'] for r in division_reports),
            'research_points_earned': self.research_points(state, seconds, efficiency),
            'power_generated': generated * seconds,
            'efficiency': efficiency,
            'mode': mode,
            'division_reports': division_reports,
        }
        logger.info(f"Offline for {capped_ms / 1000:.0f}s ({mode}): earned {report['cash_earned']:.2f}")
        return report

    def _division_name(self, division_id):
        division = self.data_loader.get_division(division_id) or {}
        return division.get('name', division_id)

    def _estimate(self, state, seconds, efficiency):
        # Power balance must be fresh before income rates read it
        scratch = copy.deepcopy(state)
        self.production.recompute_power(scratch)

        reports = []
        for division_id, division in scratch['divisions'].items():
            if not division.get('unlocked') or division.get('chief_level', 0) <= 0:
                continue
            income = self.production.division_income_per_sec(scratch, division_id)
            if income <= 0:
                continue
            reports.append({
                'division_id': division_id,
                'division_name': self._division_name(division_id),
                'cash_earned': income * seconds * efficiency,
                'cycles_completed': None,
            })
        return reports

    def _replay(self, state, capped_ms, efficiency):
        scratch = copy.deepcopy(state)
        earned = {}
        cycles = {}
        step_ms = self.config.OFFLINE_REPLAY_STEP_MS
        remaining = capped_ms
        while remaining > 0:
            step = min(step_ms, remaining)
            remaining -= step
            for event in self.production.tick(scratch, step, publish=False):
                if event['type'] != PRODUCTION_COMPLETED:
                    continue
                division_id = event['division']
                earned[division_id] = earned.get(division_id, 0.0) + event['amount']
                cycles[division_id] = cycles.get(division_id, 0) + event['cycles']

        reports = []
        for division_id, division in state['divisions'].items():
            # Manual divisions stop after one cycle; they earn nothing unattended
            if division.get('chief_level', 0) <= 0 or earned.get(division_id, 0.0) <= 0:
                continue
            reports.append({
                'division_id': division_id,
                'division_name': self._division_name(division_id),
                'cash_earned': earned[division_id] * efficiency,
                'cycles_completed': cycles[division_id],
            })
        return reports

    def apply_report(self, state, report, event_bus=None):
        """Credit a report's totals to the state in one step."""
        if report['capped_duration_ms'] <= 0:
            return False
        credit_cash(state, report['cash_earned'])
        state['research_points'] += report['research_points_earned']
        state['stats']['offline_cash_earned'] += report['cash_earned']
        if event_bus is not None:
            event_bus.publish(make_event(OFFLINE_APPLIED, cash_earned=report['cash_earned'],
                                         research_points_earned=report['research_points_earned'],
                                         duration_ms=report['capped_duration_ms']))
        return True
