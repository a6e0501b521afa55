"""
YAML configuration for providers (what to capture) and rules (what to detect).
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Tuple

import yaml

from netsentry.normalizer import CAPTURE_ALL, FieldDescriptor

logger = logging.getLogger('netsentry.config')

KNOWN_RULES = ('scan_detection', 'rdp_brute_force', 'rdp_session_hijack')
MATCH_POLICIES = ('all', 'first')


class ConfigError(Exception):
    """Configuration is missing or malformed; the process cannot start."""


@dataclass
class Provider:
    id: str
    events: FrozenSet[int] = frozenset()
    fields: Tuple[str, ...] = ()
    log_file: str = ''
    schema: Dict[int, List[FieldDescriptor]] = field(default_factory=dict)

    @property
    def capture_all(self):
        return CAPTURE_ALL in self.fields

    def tracks(self, event_id):
        return event_id in self.events


@dataclass(frozen=True)
class Rule:
    name: str
    enabled: bool = False
    alert_threshold: int = 0
    files: Tuple[str, ...] = ()
    match_policy: str = 'all'


def _load_yaml(path, root_key):
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError("error reading YAML file '%s': %s" % (path, e))
    except yaml.YAMLError as e:
        raise ConfigError("error unmarshalling YAML data in '%s': %s" % (path, e))
    if not isinstance(data, dict) or not isinstance(data.get(root_key), dict):
        raise ConfigError("'%s' must contain a '%s' mapping" % (path, root_key))
    return data[root_key]


def _int_list(values, what):
    try:
        return [int(v) for v in values or []]
    except (TypeError, ValueError):
        raise ConfigError('%s must be a list of integers, got %r' % (what, values))


def _str_list(values, what):
    if values is None:
        return ()
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise ConfigError('%s must be a list of strings, got %r' % (what, values))
    return tuple(values)


def _parse_schema(raw, key):
    schema = {}
    if not raw:
        return schema
    if not isinstance(raw, dict):
        raise ConfigError('provider %s: schema must be a mapping of event id to fields' % key)
    for event_id, paths in raw.items():
        if not isinstance(paths, dict):
            raise ConfigError('provider %s: schema for event %s must map field name to path' % (key, event_id))
        try:
            event_id = int(event_id)
        except (TypeError, ValueError):
            raise ConfigError('provider %s: schema event id %r is not an integer' % (key, event_id))
        schema[event_id] = [FieldDescriptor(str(name), str(path)) for name, path in paths.items()]
    return schema


def parse_providers(raw):
    providers = []
    for key, body in raw.items():
        if not isinstance(body, dict) or not body.get('name'):
            raise ConfigError('provider %s: a name is required' % key)
        if not body.get('logFile'):
            raise ConfigError('provider %s: a logFile is required' % key)
        providers.append(Provider(
            id=str(body['name']),
            events=frozenset(_int_list(body.get('events'), 'provider %s events' % key)),
            fields=_str_list(body.get('fields'), 'provider %s fields' % key),
            log_file=str(body['logFile']),
            schema=_parse_schema(body.get('schema'), key),
        ))
    return providers


def parse_rules(raw):
    rules = []
    for name, body in raw.items():
        body = body or {}
        if not isinstance(body, dict):
            raise ConfigError('rule %s must be a mapping' % name)
        enabled = body.get('enabled', False)
        if not isinstance(enabled, bool):
            raise ConfigError('rule %s: enabled must be true or false' % name)
        threshold = body.get('alert_threshold', 0)
        if isinstance(threshold, bool) or not isinstance(threshold, int):
            raise ConfigError('rule %s: alert_threshold must be an integer' % name)
        policy = body.get('match_policy', 'all')
        if policy not in MATCH_POLICIES:
            raise ConfigError('rule %s: match_policy must be one of %s' % (name, ', '.join(MATCH_POLICIES)))
        if name not in KNOWN_RULES:
            logger.warning('Rule %s is not a known detection rule; it will never alert', name)
        rules.append(Rule(
            name=str(name),
            enabled=enabled,
            alert_threshold=threshold,
            files=_str_list(body.get('files'), 'rule %s files' % name),
            match_policy=policy,
        ))
    return rules


def load_providers(path):
    return parse_providers(_load_yaml(path, 'providers'))


def load_rules(path):
    return parse_rules(_load_yaml(path, 'rules'))
