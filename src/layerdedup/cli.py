import argparse
import logging
import sys
import textwrap
from functools import wraps
from pathlib import Path

from . import Deduplicator, Settings, FileLayer, LayerDedupError


def needs_deduplicator(func):
    """Decorator for commands that need a configured deduplicator.

    The decorated function will receive (deduplicator, args).
    The wrapper function takes (load_deduplicator_fn, args) and calls load_deduplicator_fn.
    """
    @wraps(func)
    def wrapper(load_deduplicator_fn, args):
        return func(load_deduplicator_fn(), args)
    return wrapper


def no_deduplicator(func):
    """Decorator for commands that don't need the deduplicator.

    The decorated function will receive (args).
    """
    @wraps(func)
    def wrapper(load_deduplicator_fn, args):
        return func(args)
    return wrapper


def layerdedup_main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog='layerdedup',
        description='Rewrite container image layers so that regular files repeating the content of an earlier file '
                    'of the same layer become hard links to it.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent('''
            Examples:
              layerdedup filter --output-dir out layer1.tar layer2.tar.gz
              layerdedup describe out.report
            ''').strip()
    )
    parser.add_argument(
        '--config',
        metavar='PATH',
        help='Path to a TOML settings file. If not provided, uses LAYERDEDUP_CONFIG environment variable or the '
             'built-in defaults.')
    parser.add_argument(
        '--log-file',
        metavar='PATH',
        help='Path to log file for operation logging. If not provided, uses logging.path from settings or no '
             'logging.')
    parser.add_argument(
        '--log-level',
        metavar='LEVEL',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Defaults to INFO when --log-file is provided.')
    subparsers = parser.add_subparsers(
        dest='command',
        title='Commands',
        description='Available commands',
        help='Use "layerdedup COMMAND --help" for command-specific help'
    )

    parser_filter = subparsers.add_parser(
        'filter',
        help='Deduplicate layer blobs into an output directory',
        description='Filters every given layer blob independently. Each regular file larger than the threshold whose '
                    'content already appeared earlier in the same layer is replaced by a hard link to the first '
                    'occurrence. Layers with a foreign media type are copied unchanged.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent('''
            Examples:
              layerdedup filter --output-dir out layer.tar
              layerdedup filter --output-dir out --gzip --report out.report blobs/*.tar.gz
              layerdedup filter --output-dir out --threshold 0 --digest md5 layer.tar
            ''').strip())
    parser_filter.add_argument(
        'sources',
        nargs='+',
        metavar='SOURCE',
        help='Layer blobs to filter (tar archives, optionally gzip-compressed)')
    parser_filter.add_argument(
        '--output-dir',
        required=True,
        metavar='DIR',
        help='Directory receiving the filtered layer blobs')
    parser_filter.add_argument(
        '--threshold',
        type=int,
        metavar='N',
        help='Only files strictly larger than N bytes are linked (default: filter.threshold setting or 10000)')
    parser_filter.add_argument(
        '--digest',
        metavar='NAME',
        help='Content digest algorithm: sha256, md5 or mmh3 (default: filter.digest setting or sha256)')
    parser_filter.add_argument(
        '--gzip',
        action='store_true',
        help='gzip-compress the filtered layers')
    parser_filter.add_argument(
        '--media-type',
        metavar='TYPE',
        help='Media type of all sources (default: detected from the blob content)')
    parser_filter.add_argument(
        '--report',
        metavar='DIR',
        help='Write a report of the run to DIR, readable with "layerdedup describe"')
    parser_filter.add_argument(
        '--jobs',
        type=int,
        metavar='N',
        help='Number of layers filtered at the same time (default: jobs setting or CPU count)')
    parser_filter.add_argument(
        '--fail-fast',
        action='store_true',
        help='Stop all layers at the first failing layer')
    parser_filter.set_defaults(method=_filter)

    parser_describe = subparsers.add_parser(
        'describe',
        help='Show a report written by "layerdedup filter --report"',
        description='Displays the per-layer outcome of a filtering run and, optionally, the links it wrote.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent('''
            Examples:
              layerdedup describe out.report
              layerdedup describe --links --layer layer.tar out.report
            ''').strip())
    parser_describe.add_argument(
        'report_dir',
        metavar='REPORT_DIR',
        help='Report directory')
    parser_describe.add_argument(
        '--links',
        action='store_true',
        help='List the links written into each layer')
    parser_describe.add_argument(
        '--layer',
        metavar='NAME',
        help='Describe only the named layer')
    parser_describe.add_argument(
        '--bytes',
        action='store_true',
        help='Show sizes in bytes instead of human-readable format (e.g., 1048576 instead of 1.00 MB)')
    parser_describe.set_defaults(method=_describe)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 2

    if args.log_file:
        log_level = args.log_level
        if log_level is None:
            log_level = 'INFO'

        logging.basicConfig(
            filename=args.log_file,
            level=getattr(logging, log_level),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    def load_deduplicator():
        settings = Settings.load(args.config)
        deduplicator = Deduplicator(
            settings,
            threshold=getattr(args, 'threshold', None),
            digest=getattr(args, 'digest', None),
            jobs=getattr(args, 'jobs', None))
        if not args.log_file:
            deduplicator.configure_logging_from_settings(args.log_level)
        return deduplicator

    try:
        return args.method(load_deduplicator, args)
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


@needs_deduplicator
def _filter(deduplicator: Deduplicator, args) -> int:
    layers = [FileLayer(Path(source), media_type=args.media_type) for source in args.sources]

    try:
        summaries = deduplicator.filter_layers(
            layers, Path(args.output_dir),
            compress=args.gzip,
            report_dir=args.report,
            fail_fast=args.fail_fast)
    except LayerDedupError as e:
        print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
        return 1

    failed = False
    for summary in summaries:
        if summary.error:
            failed = True
            print(f"{summary.name}: {summary.status}: {summary.error}", file=sys.stderr)
        elif summary.links:
            print(f"{summary.name}: {summary.status}, {summary.links} links, {summary.saved_bytes} bytes saved")
        else:
            print(f"{summary.name}: {summary.status}")

    return 1 if failed else 0


@no_deduplicator
def _describe(args) -> int:
    from .commands.describe import do_describe, DescribeOptions

    options = DescribeOptions(
        show_links=args.links,
        layer=args.layer,
        use_bytes=args.bytes
    )
    do_describe(Path(args.report_dir), options)
    return 0


if __name__ == '__main__':
    sys.exit(layerdedup_main())
