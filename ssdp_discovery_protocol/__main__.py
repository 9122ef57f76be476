#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import sys
import argparse
import json
import asyncio
import logging
from signal import SIGINT, SIGTERM

from ssdp_discovery_protocol.internal_types import *

from ssdp_discovery_protocol import (
    __version__ as pkg_version,
    SsdpAdvertiser,
    SsdpBrowser,
    SsdpEvent,
    SsdpEventSource,
    SsdpEventSubscriber,
    ErrorEvent,
    HeaderSet,
    DEFAULT_INTERVAL,
    DEFAULT_SEARCH_WAIT_TIME,
    DEFAULT_TTL,
    SSDP_ALL,
  )
from ssdp_discovery_protocol.events import ServiceEvent
from ssdp_discovery_protocol.util import parse_header_assignment, format_host_and_port

class CmdExitError(RuntimeError):
    exit_code: int

    def __init__(self, exit_code: int, msg: Optional[str]=None):
        if msg is None:
            msg = f"Command exited with return code {exit_code}"
        super().__init__(msg)
        self.exit_code = exit_code

class ArgparseExitError(CmdExitError):
    pass

class NoExitArgumentParser(argparse.ArgumentParser):
    def exit(self, status=0, message=None):
        if message:
            self._print_message(message, sys.stderr)
        raise ArgparseExitError(status, message)

def event_summary(event: SsdpEvent) -> JsonableDict:
    """Returns a JSON-serializable description of an event."""
    summary: JsonableDict = {
        "kind": event.kind,
        "monotonic_time": event.monotonic_time,
        "utc_time": event.utc_time.isoformat(),
    }
    if isinstance(event, ErrorEvent):
        summary["error_type"] = type(event.error).__name__
        summary["error"] = str(event.error)
    elif isinstance(event, ServiceEvent):
        header_dict: JsonableDict = dict(event.message.headers.sorted_items())
        summary["service"] = event.service
        summary["src_addr"] = format_host_and_port(event.remote)
        summary["local_addr"] = format_host_and_port(event.local)
        summary["headers"] = header_dict
    return summary

class CommandHandler:
    _argv: Optional[Sequence[str]]
    _parser: argparse.ArgumentParser
    _args: argparse.Namespace
    _provide_traceback: bool = True

    def __init__(self, argv: Optional[Sequence[str]]=None):
        self._argv = argv

    async def cmd_bare(self) -> int:
        print("A command is required", file=sys.stderr)
        return 1

    def _parse_arg_headers(self, arg_headers: List[str]) -> HeaderSet:
        headers = HeaderSet()
        for header_assignment in arg_headers:
            try:
                name, value = parse_header_assignment(header_assignment)
                headers[name] = value
            except ValueError as ex:
                raise CmdExitError(1, str(ex)) from ex
        return headers

    def _bind_host(self) -> Optional[str]:
        bind_address: Optional[str] = self._args.bind_address
        if bind_address is not None and bind_address == '':
            bind_address = None
        return bind_address

    async def _print_events_until_stopped(self, source: SsdpEventSource, kinds: Iterable[str], duration: float) -> None:
        """Prints events from `source` as JSON until SIGINT/SIGTERM, or until `duration` seconds
           have passed if it is positive."""
        loop = asyncio.get_running_loop()
        async with SsdpEventSubscriber(source, kinds=kinds) as subscriber:
            installed_signals: List[int] = []
            for signal in (SIGINT, SIGTERM):
                try:
                    loop.add_signal_handler(signal, subscriber.close)
                    installed_signals.append(signal)
                except (NotImplementedError, RuntimeError):
                    # Signal handlers are not available on this platform/loop
                    pass
            timer_handle = loop.call_later(duration, subscriber.close) if duration > 0.0 else None
            try:
                async for event in subscriber:
                    print(json.dumps(event_summary(event), indent=2, sort_keys=True))
                    sys.stdout.flush()
            finally:
                if timer_handle is not None:
                    timer_handle.cancel()
                for signal in installed_signals:
                    loop.remove_signal_handler(signal)

    async def cmd_advertise(self) -> int:
        headers = self._parse_arg_headers(self._args.headers)
        services: Dict[str, HeaderSet] = { service: headers.copy() for service in self._args.services }
        advertiser = await SsdpAdvertiser.create(
            host=self._bind_host(),
            loopback=self._args.loopback,
            ttl=self._args.ttl,
            uuid=self._args.uuid,
            services=services,
            interval=self._args.interval,
          )
        logging.info(f"Advertising {len(services)} service(s) as uuid:{advertiser.uuid}")
        async with advertiser:
            await self._print_events_until_stopped(advertiser, ['search', 'error'], self._args.duration)
        return 0

    async def cmd_browse(self) -> int:
        services: List[str] = self._args.services
        if len(services) == 0:
            services = [SSDP_ALL]
        browser = await SsdpBrowser.create(
            host=self._bind_host(),
            loopback=self._args.loopback,
            ttl=self._args.ttl,
            services=services,
            interval=self._args.interval,
            wait_time=self._args.wait_time,
          )
        async with browser:
            await self._print_events_until_stopped(browser, ['discover', 'withdraw', 'error'], self._args.duration)
        return 0

    async def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    def _add_transport_args(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument('-b', '--bind', dest="bind_address", default=None,
                            help='''The local unicast IP address to join the multicast group on. Default: all interfaces.''')
        parser.add_argument('--loopback', action='store_true', default=False,
                            help='Receive multicast datagrams sent by this host. Default: False')
        parser.add_argument('--ttl', type=int, default=DEFAULT_TTL,
                            help=f'''The multicast time-to-live. Default: {DEFAULT_TTL}''')
        parser.add_argument('--interval', type=float, default=DEFAULT_INTERVAL,
                            help=f'''The interval between periodic messages, in seconds. Default: {DEFAULT_INTERVAL}''')
        parser.add_argument('--duration', type=float, default=0.0,
                            help='''Exit after this many seconds. Default: 0 (run until interrupted)''')

    def build_parser(self) -> argparse.ArgumentParser:
        parser = NoExitArgumentParser(prog="ssdp", description="Advertise and browse for services with SSDP.")

        # ======================= Main command

        self._parser = parser
        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Display detailed exception information')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''The logging level to use. Default: warning''')
        parser.set_defaults(func=self.cmd_bare)

        subparsers = parser.add_subparsers(
                            title='Commands',
                            description='Valid commands',
                            help='Additional help available with "<command-name> -h"')

        # ======================= advertise

        parser_advertise = subparsers.add_parser('advertise', description="Advertise services and answer searches for them")
        parser_advertise.add_argument('-s', '--service', dest="services", action='append', default=[],
                            help='''A service type to advertise. May be repeated.''')
        parser_advertise.add_argument('-H', '--header', dest="headers", action='append', default=[],
                            help='''A <name>=<value> header to include in every service advertisement. May be repeated.''')
        parser_advertise.add_argument('--uuid', default=None,
                            help='''The device UUID to advertise. Default: a random UUID''')
        self._add_transport_args(parser_advertise)
        parser_advertise.set_defaults(func=self.cmd_advertise)

        # ======================= browse

        parser_browse = subparsers.add_parser('browse', description="Search for services and report their arrival and departure")
        parser_browse.add_argument('-s', '--service', dest="services", action='append', default=[],
                            help=f'''A service type to search for. May be repeated. Default: "{SSDP_ALL}"''')
        parser_browse.add_argument('--wait-time', dest='wait_time', type=int, default=DEFAULT_SEARCH_WAIT_TIME,
                            choices=range(1, 6), metavar='{1..5}',
                            help=f'''The MX value for search requests, in seconds. Default: {DEFAULT_SEARCH_WAIT_TIME}''')
        self._add_transport_args(parser_browse)
        parser_browse.set_defaults(func=self.cmd_browse)

        # ======================= version

        parser_version = subparsers.add_parser('version',
                                description='''Display version information.''')
        parser_version.set_defaults(func=self.cmd_version)

        return parser

    async def arun(self) -> int:
        """Run the ssdp command-line tool with provided arguments

        Args:
            argv (Optional[Sequence[str]], optional):
                A list of commandline arguments (NOT including the program as argv[0]!),
                or None to use sys.argv[1:]. Defaults to None.

        Returns:
            int: The exit code that would be returned if this were run as a standalone command.
        """
        parser = self.build_parser()

        try:
            args = parser.parse_args(self._argv)
        except ArgparseExitError as ex:
            return ex.exit_code
        traceback: bool = args.traceback
        self._provide_traceback = traceback

        try:
            logging.basicConfig(
                level=logging.getLevelName(args.log_level.upper()),
            )
            self._args = args
            func: Callable[[], Awaitable[int]] = args.func
            logging.debug(f"Running command {func.__name__}, tb = {traceback}")
            rc = await func()
            logging.debug(f"Command {func.__name__} returned {rc}")
        except Exception as ex:
            if isinstance(ex, CmdExitError):
                rc = ex.exit_code
            else:
                rc = 1
            if rc != 0:
                if traceback:
                    raise
            print(f"ssdp: error: {ex}", file=sys.stderr)
        except BaseException as ex:
            print(f"ssdp: Unhandled exception: {ex}", file=sys.stderr)
            raise

        return rc

    def run(self) -> int:
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            rc = loop.run_until_complete(self.arun())
        finally:
            loop.close()
        return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = CommandHandler(argv).run()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

async def arun(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = await CommandHandler(argv).arun()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

def main() -> None:
    sys.exit(run())

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
    main()
