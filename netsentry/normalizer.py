"""
Flatten raw events into normalized field maps.
A raw event is a JSON-decoded document; the normalized record is a flat
field name -> value mapping with host:port values split into _IP / _PORT.
"""
import ipaddress
import logging
from collections import namedtuple
from datetime import datetime, timezone

from netsentry.codec import NormalizedRecord

logger = logging.getLogger('netsentry.normalizer')

CAPTURE_ALL = '*'
PLACEHOLDER = 'NA'

# name: output field name, path: dotted path into the raw event
FieldDescriptor = namedtuple('FieldDescriptor', ['name', 'path'])


def _is_scalar(value):
    return value is None or isinstance(value, (str, int, float, bool))


def _visit_mapping(value, lookup_fields, log_everything):
    for key, child in value.items():
        if not isinstance(key, str):
            continue
        visitor = _visitor_for(child)
        if visitor is not None:
            visitor(child, lookup_fields, log_everything)
            continue
        if not _is_scalar(child) or child is None:
            continue
        if log_everything or key in lookup_fields:
            lookup_fields[key] = child


def _visit_sequence(value, lookup_fields, log_everything):
    # list items carry no field name; only nested mappings contribute
    for child in value:
        visitor = _visitor_for(child)
        if visitor is not None:
            visitor(child, lookup_fields, log_everything)


_VISITORS = (
    (dict, _visit_mapping),
    ((list, tuple), _visit_sequence),
)


def _visitor_for(value):
    for types, visitor in _VISITORS:
        if isinstance(value, types):
            return visitor
    return None


def extract_log_fields(event, lookup_fields, log_everything=False):
    """Walk ``event`` and copy leaf values into ``lookup_fields``.

    With ``log_everything`` every named scalar is captured. Otherwise only keys
    already present in ``lookup_fields`` (as placeholders) are filled in.
    Top-level scalars are ignored since they have no enclosing field name.
    """
    visitor = _visitor_for(event)
    if visitor is None:
        return lookup_fields
    visitor(event, lookup_fields, log_everything)
    return lookup_fields


def resolve_path(event, path):
    node = event
    for part in path.split('.'):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def extract_schema_fields(event, descriptors, lookup_fields, log_everything=False):
    """Fill ``lookup_fields`` from declared (name, path) descriptors."""
    for desc in descriptors:
        if not log_everything and desc.name not in lookup_fields:
            continue
        value = resolve_path(event, desc.path)
        if value is None or not _is_scalar(value):
            continue
        lookup_fields[desc.name] = value
    return lookup_fields


def split_host_port(value):
    """Return (host, port) if ``value`` is an ip:port string, else None."""
    if value.startswith('['):
        end = value.find(']:')
        if end == -1:
            return None
        host, port = value[1:end], value[end + 2:]
    else:
        host, sep, port = value.rpartition(':')
        if not sep or ':' in host:
            return None
    if not port.isdigit():
        return None
    try:
        ipaddress.ip_address(host.split('%', 1)[0])
    except ValueError:
        return None
    return host, port


def extract_ip_fields(fields):
    # Shallow: only top-level string values are inspected
    for key in list(fields):
        value = fields[key]
        if not isinstance(value, str):
            continue
        parts = split_host_port(value)
        if parts is None:
            continue
        fields[key + '_IP'], fields[key + '_PORT'] = parts
        del fields[key]
    return fields


def event_id_of(event):
    try:
        return int(event['System']['EventID'])
    except (KeyError, TypeError, ValueError):
        return None


def normalize_event(event, provider, received=None):
    """Build the NormalizedRecord for ``event`` captured from ``provider``."""
    event_id = event_id_of(event)
    lookup_fields = {name: PLACEHOLDER for name in provider.fields if name != CAPTURE_ALL}
    log_everything = provider.capture_all

    descriptors = provider.schema.get(event_id)
    if descriptors:
        extract_schema_fields(event, descriptors, lookup_fields, log_everything)
    else:
        extract_log_fields(event, lookup_fields, log_everything)

    fields = {k: v for k, v in lookup_fields.items() if v != PLACEHOLDER and v is not None}
    fields['provider'] = provider.id
    extract_ip_fields(fields)
    logger.debug('normalized event %s from %s: %d fields', event_id, provider.id, len(fields))

    return NormalizedRecord(
        time=received or datetime.now(timezone.utc),
        event_id=event_id or 0,
        fields=fields,
    )
