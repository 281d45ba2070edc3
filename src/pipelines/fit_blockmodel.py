# src/pipelines/fit_blockmodel.py
import argparse
import signal
import sys
from pathlib import Path
from typing import List, Optional

from line_profiler import profile

from blockfit.io import GraphLoader, ModelWriter
from blockfit.fitter import BlockmodelFitter
from blockfit.utils.config import (
    DEFAULT_FIT_CONFIG,
    FitConfig,
    load_fit_config,
    make_fit_config,
)
from blockfit.utils.logger import ChainLogger, StatusLog


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="block-fit",
        description="Fit an undirected stochastic blockmodel to a graph.",
    )
    p.add_argument("input_file", help="Graph file (edge list, .npz, .mtx, .gml, .graphml) or - for stdin.")

    basic = p.add_argument_group("basic algorithm parameters")
    basic.add_argument("-F", "--output-format", dest="output_format", type=str,
                       help="Output format: plain (default), json or null.")
    basic.add_argument("-g", "--groups", dest="num_groups", type=int,
                       help="Number of groups; autodetected by AIC when omitted.")
    basic.add_argument("-o", "--output", dest="output", type=str, default="-",
                       help="Output file; the default is standard output.")
    basic.add_argument("-s", "--samples", dest="num_samples", type=int,
                       help="Samples taken after convergence (default 100000). "
                            "0 or less keeps the chain running until interrupted.")

    advanced = p.add_argument_group("advanced algorithm parameters")
    advanced.add_argument("--block-size", dest="block_size", type=int,
                          help="Samples per convergence check (default 65536).")
    advanced.add_argument("--init-method", dest="init_method", type=str,
                          help="Initialization method: greedy (default) or random.")
    advanced.add_argument("--convergence", dest="convergence", type=str,
                          help="Convergence criterion: entropy (default).")
    advanced.add_argument("--log-period", dest="log_period", type=int,
                          help="Steps between status lines (default 8192).")
    advanced.add_argument("--max-groups", dest="max_groups", type=int,
                          help="Largest group count tried by autodetection "
                               "(default floor(sqrt(vertex count))).")
    advanced.add_argument("--seed", dest="random_seed", type=int,
                          help="Seed of the random number generator.")
    advanced.add_argument("--config", dest="config", type=str,
                          help="YAML file with any of the options above.")
    advanced.add_argument("--trace", dest="trace_file", type=str,
                          help="Write a CSV trace of the chain to this file.")

    verbosity = p.add_mutually_exclusive_group()
    verbosity.add_argument("-q", "--quiet", dest="verbosity", action="store_const", const=0)
    verbosity.add_argument("-v", "--verbose", dest="verbosity", action="store_const", const=2)
    return p


def resolve_config(args: argparse.Namespace) -> FitConfig:
    """ Defaults, then the YAML file, then command-line options. """
    base = load_fit_config(args.config) if args.config else make_fit_config()
    overrides = {
        key: getattr(args, key)
        for key in DEFAULT_FIT_CONFIG
        if getattr(args, key, None) is not None
    }
    return make_fit_config(**{**base, **overrides})


def install_dump_handler(fitter: BlockmodelFitter) -> None:
    """ SIGUSR1 asks the fitter to dump its best model at the next safe point. """
    if hasattr(signal, "SIGUSR1"):
        signal.signal(signal.SIGUSR1, lambda signum, frame: fitter.request_dump())


@profile
def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    log = StatusLog(args.verbosity if args.verbosity is not None else 1)

    try:
        config = resolve_config(args)
        writer = ModelWriter.create(config["output_format"])
    except FileNotFoundError as e:
        log.error(str(e))
        return 1
    except ValueError as e:
        log.error(str(e))
        return 2

    log = StatusLog(config["verbosity"])
    log.info(">> loading graph: %s", args.input_file)
    try:
        graph = GraphLoader.load(args.input_file)
    except (FileNotFoundError, ValueError) as e:
        log.error(str(e))
        return 1

    output = sys.stdout if args.output == "-" else Path(args.output).open("w")
    chain_logger = (
        ChainLogger(config["trace_file"], log_every=config["log_period"])
        if config["trace_file"] else None
    )
    try:
        fitter = BlockmodelFitter(
            graph=graph,
            config=config,
            writer=writer,
            output=output,
            chain_logger=chain_logger,
        )
        install_dump_handler(fitter)
        fitter.run()
    finally:
        if chain_logger is not None:
            chain_logger.close()
        if output is not sys.stdout:
            output.close()

    return 0


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
