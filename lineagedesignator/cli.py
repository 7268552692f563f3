#!/usr/bin/env python3
"""
lineagedesignator Command-Line Interface

Reads a tree, an alignment, ancestral reconstructions and sequence metadata,
designates lineages, and writes the per-sequence lineage table (and
optionally a per-lineage summary).
"""

import argparse
import sys
import logging
from pathlib import Path
from typing import List, Optional

from . import __version__, config, io, utils
from .designation import designate_with_details
from .exceptions import DesignationError
from .summary import summarize_lineages

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='lineagedesignator',
        description='lineagedesignator: hierarchical lineage designation for phylogenetic trees',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Designate lineages with the default support threshold (70)
  lineagedesignator --tree tree.nwk --alignment aligned.fasta \\
      --ancestral ancestral_sequences.fasta --metadata metadata.csv

  # Stricter support, with a per-lineage summary
  lineagedesignator --tree tree.nwk --alignment aligned.fasta \\
      --ancestral ancestral_sequences.fasta --metadata metadata.csv \\
      --min-support 90 --summary results/lineage_summary.tsv

  # Thresholds from a configuration file
  lineagedesignator --config run.yaml --tree tree.nex --tree-format nexus ...

  # Record the thresholds actually used alongside the results
  lineagedesignator --config run.yaml --save-config results/run_config.yaml ...

Notes:
  - Ancestral sequences must be named NODE_0000000, NODE_0000001, ...
    in preorder, as written by TreeTime
  - Metadata needs ID, year, country and assignment columns
        """
    )

    inputs = parser.add_argument_group('inputs')
    inputs.add_argument('--tree', type=Path, required=True,
                        help='Rooted tree with node support values')
    inputs.add_argument('--alignment', type=Path, required=True,
                        help='Aligned sequences (FASTA)')
    inputs.add_argument('--ancestral', type=Path, required=True,
                        help='Ancestral reconstructions of internal nodes (FASTA)')
    inputs.add_argument('--metadata', type=Path, required=True,
                        help='Sequence metadata (CSV or TSV)')

    parser.add_argument(
        '--min-support',
        type=float,
        default=None,
        help='Minimum node support for a candidate lineage (default: 70, or the config value)'
    )
    parser.add_argument(
        '--tree-format',
        choices=io.TREE_FORMATS,
        default=None,
        help='Tree file format (default: newick, or the config value)'
    )
    parser.add_argument(
        '--output',
        type=Path,
        default=None,
        help='Output sequence table (default: {output_dir}/lineages.tsv)'
    )
    parser.add_argument(
        '--summary',
        type=Path,
        default=None,
        help='Also write a per-lineage summary table to this path'
    )
    parser.add_argument(
        '--config',
        type=Path,
        default=None,
        help='YAML or JSON configuration file'
    )
    parser.add_argument(
        '--save-config',
        type=Path,
        default=None,
        help='Write the resolved configuration to this YAML file'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Logging verbosity (default: INFO)'
    )
    parser.add_argument(
        '--log-file',
        type=str,
        default=None,
        help='Also write log messages to this file'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'lineagedesignator {__version__}'
    )
    return parser


def load_run_config(args: argparse.Namespace) -> config.PipelineConfig:
    """Defaults, then config file, then environment, then command-line flags."""
    if args.config is not None:
        cfg = config.load_config_from_file(args.config)
    else:
        cfg = config.get_default_config()

    env_overrides = config.load_config_from_env()
    if env_overrides:
        cfg = cfg.update(**env_overrides)

    overrides = {}
    if args.min_support is not None:
        overrides['designation__min_support'] = args.min_support
    if args.tree_format is not None:
        overrides['tree_format'] = args.tree_format
    if args.log_level is not None:
        overrides['log_level'] = args.log_level
    if overrides:
        cfg = cfg.update(**overrides)
    return cfg


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    for label, path in [('Tree', args.tree), ('Alignment', args.alignment),
                        ('Ancestral sequence', args.ancestral), ('Metadata', args.metadata)]:
        if not path.exists():
            print(f"Error: {label} file not found: {path}", file=sys.stderr)
            return 1

    try:
        cfg = load_run_config(args)
    except (FileNotFoundError, ValueError, TypeError) as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        return 1

    utils.setup_logging(log_level=cfg.log_level, log_file=args.log_file)
    for warning in config.validate_config(cfg):
        logger.warning(warning)
    if args.save_config is not None:
        cfg.to_yaml(args.save_config)

    output_path = args.output if args.output else cfg.output_dir / "lineages.tsv"

    logger.info("=" * 80)
    logger.info("lineagedesignator")
    logger.info("=" * 80)
    logger.info(f"Tree: {args.tree}")
    logger.info(f"Alignment: {args.alignment}")
    logger.info(f"Ancestral sequences: {args.ancestral}")
    logger.info(f"Metadata: {args.metadata}")
    logger.info(f"Output: {output_path}")
    logger.info("")

    try:
        tree = io.read_tree(args.tree, cfg.tree_format)
        alignment = io.read_alignment(args.alignment)
        ancestral = io.read_ancestral(args.ancestral)
        metadata = io.read_metadata(args.metadata)

        table, context = designate_with_details(
            tree, None, alignment, metadata, ancestral, config=cfg.designation
        )

        io.write_sequence_table(table, output_path)
        if args.summary is not None:
            io.write_table(summarize_lineages(table, context), args.summary)

        logger.info("")
        logger.info(f"Designated {len(context.candidates)} lineages")
        return 0

    except KeyboardInterrupt:
        print("\n\nDesignation interrupted by user", file=sys.stderr)
        return 130
    except (DesignationError, ValueError, FileNotFoundError) as e:
        logger.error(f"Designation failed: {e}")
        print(f"\nError: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"Designation failed with error: {e}", exc_info=True)
        print(f"\nError: Designation failed: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
