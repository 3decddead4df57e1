"""
Command line entry point for the swarm benchmark.
"""

import os
import sys
import logging
import argparse

import uvloop

# Add the project root to Python path for imports
_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from configuration import DEFAULT_PLOTS_DIR

# Set up logging (only if not already configured)
if not logging.root.handlers:
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logging.getLogger('aiohttp.access').setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


class SwarmBenchCLI:
    """CLI interface for the swarm transfer benchmark."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self):
        """Create the main argument parser."""
        from cli.node import add_node_arguments
        from cli.simulate import add_simulate_arguments
        from cli.sync_server import add_server_arguments

        parser = argparse.ArgumentParser(
            description='Swarm Transfer Benchmark CLI',
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Start the rendezvous server
  python -m cli sync-server --port 5050

  # Start one producer and two consumers (in three shells or hosts)
  python -m cli node --role seed --instances 3 --sizes 1048576 --waves 2
  python -m cli node --role leech --instances 3 --sizes 1048576 --waves 2
  python -m cli node --role leech --instances 3 --sizes 1048576 --waves 2

  # Run a whole fleet inside one process
  python -m cli simulate --producers 1 --consumers 4 --waves 2 --run-count 3

  # Summarize and plot results
  python -m cli report --parquet-files results/*.parquet --output-dir plots
            """
        )

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        add_node_arguments(subparsers.add_parser('node', help='Run one benchmark node'))
        add_server_arguments(subparsers.add_parser('sync-server', help='Run the rendezvous server'))
        add_simulate_arguments(subparsers.add_parser('simulate', help='Run a fleet in one process'))

        report_parser = subparsers.add_parser('report', help='Summarize and plot benchmark results')
        report_parser.add_argument('--parquet-files', nargs='+', required=True,
                                   help='Parquet files written by the nodes')
        report_parser.add_argument('--output-dir', type=str, default=DEFAULT_PLOTS_DIR,
                                   help=f'Output directory for generated plots (default: {DEFAULT_PLOTS_DIR})')

        return parser

    def run_node(self, args):
        """Run one benchmark node."""
        from cli.node import runner_from_args

        logger.info("=== Benchmark Node ===")
        runner = runner_from_args(args)
        records = uvloop.run(runner.run_node())
        logger.info(f"Node completed successfully with {len(records)} run records")
        return 0

    def run_sync_server(self, args):
        """Run the rendezvous server until interrupted."""
        from cli.sync_server import serve

        logger.info("=== Rendezvous Server ===")
        uvloop.run(serve(args.host, args.port))
        return 0

    def run_simulate(self, args):
        """Run a fleet in one process."""
        from cli.simulate import simulate_from_args

        logger.info("=== Fleet Simulation ===")
        parquet_file = uvloop.run(simulate_from_args(args))
        if parquet_file:
            logger.info(f"Results saved to: {parquet_file}")
        return 0

    def run_report(self, args):
        """Summarize results and create plots."""
        from cli.report import BenchmarkReporter

        logger.info("=== Report ===")
        missing = [p for p in args.parquet_files if not os.path.exists(p)]
        if missing:
            logger.error(f"Parquet files not found: {missing}")
            return 1

        reporter = BenchmarkReporter(args.parquet_files, args.output_dir)
        summary = reporter.summary()
        if len(summary) == 0:
            logger.error("No run records found")
            return 1
        print(summary.to_string(index=False))

        plots = reporter.create_all_plots()
        logger.info(f"Created {len(plots)} plots in {args.output_dir}")
        for plot in plots:
            logger.info(f"  - {plot}")
        return 0

    def run(self, args=None):
        """Run the CLI with the given arguments."""
        if args is None:
            args = sys.argv[1:]

        parsed_args = self.parser.parse_args(args)

        if not parsed_args.command:
            self.parser.print_help()
            return 1

        handlers = {
            'node': self.run_node,
            'sync-server': self.run_sync_server,
            'simulate': self.run_simulate,
            'report': self.run_report,
        }

        try:
            return handlers[parsed_args.command](parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation interrupted by user")
            return 1
        except Exception as e:
            logger.error(f"{parsed_args.command} failed: {e}")
            return 1


def main():
    """Main entry point."""
    cli = SwarmBenchCLI()
    sys.exit(cli.run())


if __name__ == '__main__':
    main()
