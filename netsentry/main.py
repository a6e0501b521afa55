#!/usr/bin/env python3
"""
Collector entry point: UDP/TCP listeners accept JSON events from the capture
forwarder, normalize them into per-provider log files, while the rule engine
replays recent windows of those files every interval.
"""
import argparse
import asyncio
import logging
import sys

from netsentry.alerting import Alerting
from netsentry.analyzer import RULE_INTERVAL, RuleEngine
from netsentry.config import ConfigError, load_providers, load_rules
from netsentry.session import Session
from netsentry.storage import DEFAULT_LOG_DIR, ProviderLogWriter

logger = logging.getLogger('netsentry')

CAPTURE_SECONDS = 120


class UDPServerProtocol(asyncio.DatagramProtocol):
    def __init__(self, session):
        self.session = session

    def datagram_received(self, data, addr):
        text = data.decode(errors='ignore').strip()
        if text:
            self.session.handle_payload(text)


async def tcp_client_handler(reader, writer, session):
    while True:
        data = await reader.readline()
        if not data:
            break
        text = data.decode(errors='ignore').strip()
        if text:
            session.handle_payload(text)
    writer.close()
    await writer.wait_closed()


async def run_collector(session, engine, udp_port, tcp_port, capture_seconds):
    loop = asyncio.get_running_loop()
    udp_transport, _ = await loop.create_datagram_endpoint(
        lambda: UDPServerProtocol(session),
        local_addr=('0.0.0.0', udp_port))
    server = await asyncio.start_server(
        lambda r, w: tcp_client_handler(r, w, session), '0.0.0.0', tcp_port)
    logger.info('UDP listening on 0.0.0.0:%d, TCP on 0.0.0.0:%d', udp_port, tcp_port)

    stop = asyncio.Event()
    rules_task = asyncio.create_task(engine.run(stop))
    try:
        await asyncio.sleep(capture_seconds)
    finally:
        stop.set()
        # the rule loop is abandoned, not drained
        rules_task.cancel()
        udp_transport.close()
        server.close()
        await server.wait_closed()
    logger.warning('Session ended after %ds (%d events captured), exiting...',
                   capture_seconds, session.captured)


def build_parser():
    parser = argparse.ArgumentParser(description='Host network anomaly detector')
    parser.add_argument('--loglevel', default='info',
                        choices=['debug', 'info', 'warning', 'error', 'critical'])
    parser.add_argument('--providers', default='config/providers.yml')
    parser.add_argument('--rules', default='config/rules.yml')
    parser.add_argument('--log-dir', default=DEFAULT_LOG_DIR)
    parser.add_argument('--udp-port', type=int, default=5515)
    parser.add_argument('--tcp-port', type=int, default=5515)
    parser.add_argument('--capture-seconds', type=int, default=CAPTURE_SECONDS)
    parser.add_argument('--interval', type=int, default=RULE_INTERVAL)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.loglevel.upper()),
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    try:
        providers = load_providers(args.providers)
        rules = load_rules(args.rules)
    except ConfigError as e:
        logger.critical('unable to initialize; shutting down: %s', e)
        return 1

    engine = RuleEngine(rules, Alerting(), log_dir=args.log_dir, interval=args.interval)
    with ProviderLogWriter(args.log_dir, providers) as writer:
        session = Session(providers, writer)
        try:
            asyncio.run(run_collector(session, engine, args.udp_port, args.tcp_port, args.capture_seconds))
        except KeyboardInterrupt:
            logger.info('Shutting down')
    return 0


if __name__ == '__main__':
    sys.exit(main())
