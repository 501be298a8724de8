"""Game data loader for loading JSON configuration files."""
import json
from pathlib import Path

# Document name -> top-level key holding the payload
DOCUMENTS = {
    'divisions': None,
    'automation': 'automation_levels',
    'milestones': 'milestones',
    'upgrades': 'upgrades',
    'research': 'research',
    'bottlenecks': 'bottlenecks',
    'buffs': 'buffs',
    'synergies': 'synergies',
    'random_events': None,
    'economic_rules': None,
}

class GameDataLoader:
    """Loads and caches static game content from JSON files."""

    def __init__(self, data_dir=None):
        """Initialize the data loader."""
        if data_dir is None:
            self.data_dir = Path(__file__).parent / 'game_data'
        else:
            self.data_dir = Path(data_dir)

        self._documents = {}
        self._divisions_by_id = None
        self._upgrades_by_id = None
        self._research_by_id = None
        self._buffs_by_id = None

    @classmethod
    def from_documents(cls, documents):
        """Build a loader from in-memory documents instead of files.

        Args:
            documents: dict keyed by document name ('divisions', 'automation',
                'milestones', ...) holding the same structure as the JSON files.
                Missing documents fall back to the packaged files.
        """
        loader = cls()
        for name, document in documents.items():
            if name not in DOCUMENTS:
                raise KeyError(f"Unknown game data document: {name}")
            loader._documents[name] = document
        return loader

    def _load(self, name):
        if name not in self._documents:
            file_path = self.data_dir / f'{name}.json'
            if file_path.exists():
                with open(file_path, 'r') as f:
                    self._documents[name] = json.load(f)
            else:
                self._documents[name] = {}
        return self._documents[name]

    def _section(self, name):
        key = DOCUMENTS[name]
        document = self._load(name)
        return document.get(key, []) if key else document

    # Divisions

    def load_divisions(self):
        """Load division definitions in display order."""
        return self._load('divisions').get('divisions', [])

    def get_division_ids(self):
        """Get division IDs in display order."""
        return [d['id'] for d in self.load_divisions()]

    def get_division(self, division_id):
        """Get division data by ID."""
        if self._divisions_by_id is None:
            self._divisions_by_id = {d['id']: d for d in self.load_divisions()}
        return self._divisions_by_id.get(division_id)

    def get_tier_config(self, division_id, tier_index):
        """Get a tier's static configuration, or None when it does not exist."""
        division = self.get_division(division_id)
        if not division or tier_index is None or tier_index < 0:
            return None
        tiers = division.get('tiers', [])
        if tier_index >= len(tiers):
            return None
        return tiers[tier_index]

    def get_power_division_id(self):
        """Get the division that generates power and ignores power efficiency."""
        return self._load('divisions').get('power_division')

    def get_starter_division_ids(self):
        """Get divisions that start unlocked after the first colony prestige."""
        return self._load('divisions').get('starter_divisions', [])

    def get_division_unlock_cost(self, division_id):
        """Get the cash cost to unlock a division, or None for unknown divisions."""
        division = self.get_division(division_id)
        if division is None:
            return None
        return division.get('unlock_cost', 0)

    # Automation (chiefs)

    def load_automation_levels(self):
        """Load automation levels sorted by level."""
        return sorted(self._section('automation'), key=lambda a: a['level'])

    def get_automation_speed_table(self):
        """Get speed multipliers indexed by automation level minus one."""
        return [a['speed_multiplier'] for a in self.load_automation_levels()]

    def get_automation_level(self, level):
        """Get automation level data."""
        for entry in self.load_automation_levels():
            if entry['level'] == level:
                return entry
        return None

    def get_max_automation_level(self):
        levels = self.load_automation_levels()
        return levels[-1]['level'] if levels else 0

    # Milestones

    def load_milestones(self):
        """Load milestone thresholds sorted ascending."""
        return sorted(self._section('milestones'), key=lambda m: m['threshold'])

    # Upgrades

    def load_upgrades(self):
        """Load one-time upgrade definitions."""
        return self._section('upgrades')

    def get_upgrade(self, upgrade_id):
        """Get upgrade data by ID."""
        if self._upgrades_by_id is None:
            self._upgrades_by_id = {u['id']: u for u in self.load_upgrades()}
        return self._upgrades_by_id.get(upgrade_id)

    # Research

    def load_research_tree(self):
        """Load the research tree nodes."""
        return self._section('research')

    def get_research_node(self, node_id):
        """Get research node data by ID."""
        if self._research_by_id is None:
            self._research_by_id = {n['id']: n for n in self.load_research_tree()}
        return self._research_by_id.get(node_id)

    # Bottlenecks

    def load_bottlenecks(self):
        """Load bottleneck definitions."""
        return self._section('bottlenecks')

    def get_bottleneck(self, bottleneck_id):
        for definition in self.load_bottlenecks():
            if definition['id'] == bottleneck_id:
                return definition
        return None

    # Buffs

    def load_buffs(self):
        """Load transient buff definitions."""
        return self._section('buffs')

    def get_buff(self, buff_id):
        """Get buff definition by ID."""
        if self._buffs_by_id is None:
            self._buffs_by_id = {b['id']: b for b in self.load_buffs()}
        return self._buffs_by_id.get(buff_id)

    # Synergies

    def load_synergies(self):
        """Load cross-division synergy definitions."""
        return self._section('synergies')

    def get_synergy(self, synergy_id):
        for synergy in self.load_synergies():
            if synergy['id'] == synergy_id:
                return synergy
        return None

    # Random events

    def load_random_events(self):
        """Load random event definitions."""
        return self._load('random_events').get('events', [])

    def get_random_event(self, event_id):
        for definition in self.load_random_events():
            if definition['id'] == event_id:
                return definition
        return None

    def get_random_event_rules(self):
        """Scheduling rules: first event delay, interval range, repeat window."""
        return self._load('random_events').get('rules', {})

    # Economic rules

    def load_economic_rules(self):
        """Load economic rules data."""
        return self._section('economic_rules')

    def get_rules(self, section, default=None):
        """Get one section of the economic rules."""
        rules = self.load_economic_rules()
        return rules.get(section, {} if default is None else default)

    def validate_data(self):
        """Validate loaded data structure."""
        errors = []

        divisions = self.load_divisions()
        if not divisions:
            errors.append("No divisions loaded")

        division_ids = [d['id'] for d in divisions]
        if len(division_ids) != len(set(division_ids)):
            errors.append("Duplicate division IDs found")

        power_division = self.get_power_division_id()
        if power_division not in division_ids:
            errors.append(f"Power division not defined: {power_division}")

        for division in divisions:
            for index, tier in enumerate(division.get('tiers', [])):
                if tier.get('cost_multiplier', 0) <= 1:
                    errors.append(f"{division['id']} tier {index}: cost multiplier must exceed 1")
                if tier.get('cycle_duration', 0) <= 0:
                    errors.append(f"{division['id']} tier {index}: cycle duration must be positive")
                if tier.get('base_cost', 0) <= 0:
                    errors.append(f"{division['id']} tier {index}: base cost must be positive")

        thresholds = [m['threshold'] for m in self.load_milestones()]
        if len(thresholds) != len(set(thresholds)):
            errors.append("Milestone thresholds must be strictly increasing")

        levels = [a['level'] for a in self.load_automation_levels()]
        if levels != list(range(1, len(levels) + 1)):
            errors.append("Automation levels must run 1..N without gaps")

        research_ids = {n['id'] for n in self.load_research_tree()}
        for node in self.load_research_tree():
            for prereq in node.get('prerequisites', []):
                if prereq not in research_ids:
                    errors.append(f"Research {node['id']} has unknown prerequisite {prereq}")

        for definition in self.load_bottlenecks():
            severity = definition.get('severity', 0)
            if not 0 <= severity < 1:
                errors.append(f"Bottleneck {definition['id']} severity must be in [0, 1)")
            if not definition.get('global') and definition.get('division') not in division_ids:
                errors.append(f"Bottleneck {definition['id']} targets unknown division")

        for upgrade in self.load_upgrades():
            target = upgrade.get('target')
            if target != 'all' and target not in division_ids:
                errors.append(f"Upgrade {upgrade['id']} targets unknown division {target}")

        for synergy in self.load_synergies():
            for side in ('source', 'target'):
                if synergy.get(side) not in division_ids:
                    errors.append(f"Synergy {synergy['id']} {side} is an unknown division")
            if synergy.get('effect', {}).get('type') not in ('speed', 'revenue', 'cost'):
                errors.append(f"Synergy {synergy['id']} has unknown effect type")

        for definition in self.load_random_events():
            for choice in definition.get('choices', []):
                for effect in choice.get('effects', []):
                    if effect.get('type') == 'buff' and not self.get_buff(effect.get('buff')):
                        errors.append(f"Random event {definition['id']} grants unknown buff {effect.get('buff')}")

        return errors

# Global instance for the packaged content
_game_data_loader = None

def get_game_data_loader(data_dir=None):
    """Get or create the shared loader for the packaged game data."""
    global _game_data_loader
    if _game_data_loader is None:
        _game_data_loader = GameDataLoader(data_dir)
    return _game_data_loader
