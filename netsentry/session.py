"""
Capture session: route incoming raw events to their provider, normalize, and persist.
"""
import json
import logging

from netsentry.normalizer import event_id_of, normalize_event

logger = logging.getLogger('netsentry.session')


def provider_identity(event):
    try:
        info = event['System']['Provider']
    except (KeyError, TypeError):
        return None, None
    if not isinstance(info, dict):
        return None, None
    return info.get('Name'), info.get('Guid')


class Session:
    def __init__(self, providers, writer):
        self.providers = providers
        self.writer = writer
        self.captured = 0

    def find_provider(self, event):
        name, guid = provider_identity(event)
        found = None
        for provider in self.providers:
            if provider.id in (name, guid):
                found = provider
        return found

    def handle_event(self, event):
        """Normalize and write ``event``; returns the record or None if dropped."""
        provider = self.find_provider(event)
        if provider is None:
            name, guid = provider_identity(event)
            logger.warning('Event from unknown provider. Name: %s GUID: %s', name, guid)
            return None
        if not provider.tracks(event_id_of(event)):
            return None
        record = normalize_event(event, provider)
        self.writer.write(record)
        self.captured += 1
        return record

    def handle_payload(self, text):
        try:
            event = json.loads(text)
        except ValueError as e:
            logger.warning('Dropping malformed event payload: %s', e)
            return None
        if not isinstance(event, dict):
            logger.warning('Dropping event payload that is not a JSON object')
            return None
        try:
            return self.handle_event(event)
        except OSError as e:
            logger.error('Failed to persist event: %s', e)
            return None
