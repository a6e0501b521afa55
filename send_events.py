#!/usr/bin/env python3
"""
Script to replay captured events (one JSON document per line) to the collector.
Usage: python send_events.py [--host localhost] [--port 5515]
"""
import socket
import sys
import argparse
import time


def read_events(event_file):
    with open(event_file, 'r', encoding='utf-8') as f:
        return [line.strip() for line in f if line.strip()]


def send_events_tcp(host, port, event_file, delay):
    """Send events to collector via TCP, one per line."""
    print(f"Sending events to {host}:{port} via TCP...")
    events = read_events(event_file)

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.connect((host, port))
        for event in events:
            sock.sendall((event + '\n').encode())
            print(f"  Sent: {event[:60]}...")
            time.sleep(delay)
        print(f"\n✓ Successfully sent {len(events)} events")
    except OSError as e:
        print(f"✗ Error: {e}")
        sys.exit(1)
    finally:
        sock.close()


def send_events_udp(host, port, event_file, delay):
    """Send events to collector via UDP, one per datagram."""
    print(f"Sending events to {host}:{port} via UDP...")
    events = read_events(event_file)

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        for event in events:
            sock.sendto(event.encode(), (host, port))
            print(f"  Sent: {event[:60]}...")
            time.sleep(delay)
        print(f"\n✓ Successfully sent {len(events)} events")
    except OSError as e:
        print(f"✗ Error: {e}")
        sys.exit(1)
    finally:
        sock.close()


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Replay sample events to the netsentry collector')
    parser.add_argument('--host', default='localhost', help='Collector host')
    parser.add_argument('--port', type=int, default=5515, help='Collector port')
    parser.add_argument('--protocol', choices=['tcp', 'udp'], default='tcp', help='Protocol to use')
    parser.add_argument('--file', default='sample_data/sample_events.jsonl', help='Event file to send')
    parser.add_argument('--delay', type=float, default=0.1, help='Seconds between events')
    args = parser.parse_args()

    if args.protocol == 'tcp':
        send_events_tcp(args.host, args.port, args.file, args.delay)
    else:
        send_events_udp(args.host, args.port, args.file, args.delay)
