import argparse
import configparser
import os
import signal
import sys
from datetime import datetime, timedelta

from apscheduler.schedulers.background import BackgroundScheduler

from ping_exporter.collection.lifecycle import LifecycleController
from ping_exporter.collection.prober import Session
from ping_exporter.collection.recorder import OutcomeRecorder
from ping_exporter.collection.transport import TransportError
from ping_exporter.exposition.sink import PrometheusSink, SinkError
from ping_exporter.utils.config_loader import Settings, load_config, parse_duration
from ping_exporter.utils.logger_setup import setup_logger
from ping_exporter.utils.report import format_banner, print_sample, print_summary
from ping_exporter.utils.resolver import ResolutionError, resolve_target

DEFAULT_CONFIG_PATH = os.path.join('configs', 'default_config.ini')

USAGE = "ping-exporter [--bind-addr listen-address] [-c count] [-i interval] [-t timeout] host"


def build_argparser():
    parser = argparse.ArgumentParser(description='ICMP ping exporter for Prometheus', usage=USAGE)
    parser.add_argument('target', nargs='?', help='Host to ping (hostname or IPv4 address)')
    parser.add_argument('--mode', choices=['probe', 'analyze'], default='probe', help='Run mode')
    parser.add_argument('--input', help='analyze mode: raw_data.jsonl file or directory containing it')
    parser.add_argument('--config', help=f'INI configuration file (default: {DEFAULT_CONFIG_PATH} if present)')
    parser.add_argument('-c', '--count', type=int, help='Number of echo requests to send, -1 for unbounded')
    parser.add_argument('-i', '--interval', type=parse_duration, help='Interval between echo requests (e.g. 1s)')
    parser.add_argument('-t', '--timeout', type=parse_duration, help='Per-probe timeout before a probe counts as lost')
    parser.add_argument('-d', '--duration', type=parse_duration, help='Stop after this long (0 = never)')
    parser.add_argument('-s', '--size', type=int, help='Echo payload size in bytes')
    parser.add_argument('--unprivileged', action='store_true', default=None,
                        help='Use a datagram ICMP socket instead of a raw socket')
    parser.add_argument('--bind-addr', help='Address on which to expose metrics (e.g. :9999)')
    parser.add_argument('--metrics-path', help='Path under which to expose Prometheus metrics')
    parser.add_argument('--record', help='Append every probe outcome to this JSONL file')
    parser.add_argument('--log-level', help='Logging level (DEBUG, INFO, ...)')
    return parser


def load_settings(args):
    """Config file values overridden by command-line flags."""
    if args.config:
        config = load_config(args.config)
    elif os.path.exists(DEFAULT_CONFIG_PATH):
        config = load_config(DEFAULT_CONFIG_PATH)
    else:
        config = configparser.ConfigParser()

    settings = Settings.from_config(config)
    overrides = {
        'target': args.target,
        'count': args.count,
        'interval': args.interval,
        'timeout': args.timeout,
        'run_duration': args.duration,
        'packet_size': args.size,
        'bind_addr': args.bind_addr,
        'metrics_path': args.metrics_path,
        'record_file': args.record,
        'log_level': args.log_level,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(settings, key, value)
    if args.unprivileged:
        settings.privileged = False
    return settings.validate()


def run_probe_workflow(settings):
    logger = setup_logger(settings.log_dir, settings.log_level, settings.log_format)

    # 1. Resolve target
    try:
        address = resolve_target(settings.target)
    except ResolutionError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return 1

    # 2. Build the session before anything binds a port
    try:
        session = Session(
            target=address,
            label=settings.target,
            interval=settings.interval,
            timeout=settings.timeout,
            count=settings.count,
            payload_size=settings.packet_size,
            receive_poll=settings.receive_poll,
            privileged=settings.privileged,
        )
    except ValueError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return 1

    # 3. Start the scrape endpoint
    sink = PrometheusSink()
    try:
        sink.serve(settings.bind_addr, settings.metrics_path)
    except SinkError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return 1
    print(f"Now listening on {settings.bind_addr}")

    recorder = OutcomeRecorder(settings.record_file).start() if settings.record_file else None
    sample_observers = [print_sample] + ([recorder] if recorder else [])

    # 4. Start probing
    controller = LifecycleController(sink)
    print(format_banner(settings.target, address))
    try:
        handle = controller.start(session, sample_observers=sample_observers, summary_observers=[print_summary])
    except TransportError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        if recorder:
            recorder.close()
        sink.close()
        return 1

    # 5. Interrupts and the optional run deadline all end in a single stop()
    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}")
        controller.stop(handle)

    previous_handlers = {}
    for signum in (signal.SIGINT, getattr(signal, 'SIGTERM', None)):
        if signum is None:
            continue
        try:
            previous_handlers[signum] = signal.signal(signum, _handle_signal)
        except ValueError:
            # not the main thread; rely on count/duration to finish
            logger.warning(f"Cannot install handler for signal {signum}")

    scheduler = None
    if settings.run_duration > 0:
        scheduler = BackgroundScheduler(job_defaults={'misfire_grace_time': 10})
        scheduler.add_job(
            controller.stop, 'date',
            run_date=datetime.now() + timedelta(seconds=settings.run_duration),
            args=[handle], id='run_deadline',
        )
        scheduler.start()
        logger.info(f"Probing will stop after {settings.run_duration} seconds.")

    # 6. Wait, keeping the main thread responsive to signals
    try:
        while handle.running:
            handle.wait(0.5)
    finally:
        for signum, previous in previous_handlers.items():
            if previous is not None:
                signal.signal(signum, previous)
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        if recorder:
            recorder.close()
        sink.close()
        logger.info("Shutdown complete.")
    return 1 if handle.error else 0


def run_analyze_workflow(input_path, settings):
    if not input_path or not os.path.exists(input_path):
        print(f"Input not found: {input_path}", file=sys.stderr)
        return 2
    log_dir = input_path if os.path.isdir(input_path) else (os.path.dirname(input_path) or '.')
    setup_logger(log_dir, settings.log_level, settings.log_format)
    from ping_exporter.analysis.rtt_analyzer import RTTAnalyzer
    result = RTTAnalyzer(input_path).run()
    return 0 if result is not None else 1


def main(argv=None):
    parser = build_argparser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args)
    except (FileNotFoundError, configparser.Error, ValueError) as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return 1

    if args.mode == 'analyze':
        return run_analyze_workflow(args.input or args.target, settings)
    if not settings.target:
        parser.print_usage(sys.stderr)
        return 2
    return run_probe_workflow(settings)


if __name__ == '__main__':
    sys.exit(main())
