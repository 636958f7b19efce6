#!/usr/bin/env python3
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import logging
import sys

import click

from teasolver import version
from teasolver.log_util import setup_logging
from teasolver.observation import ObservationTrace
from teasolver.search import Found
from teasolver.solver import KeySolver, git_info
from teasolver.types import InsufficientObservationsError, TraceFormatError
from teasolver.util import fmt_bits, parse_word


log = logging.getLogger(__name__)


@dataclass
class GlobalArgs:
    trace: ObservationTrace
    trace_path: Path


def log_invocation():
    git_commit, git_changed_files = git_info()
    log.info(f"version: {version}, git_commit: {git_commit}, git_changed_files: {git_changed_files}")
    log.debug("arguments: %s", sys.argv, extra={"cli_args": sys.argv, "git_commit": git_commit, "git_changed_files": git_changed_files, "version": version})


class Word(click.ParamType):
    name = 'word'

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            return value
        try:
            return parse_word(value)
        except ValueError:
            self.fail(f'{value!r} is not a 32-bit hex word', param, ctx)


WORD = Word()


def make_solver(trace: ObservationTrace, allow_single: bool) -> KeySolver:
    try:
        return KeySolver(trace, allow_single=allow_single)
    except InsufficientObservationsError as e:
        raise click.UsageError(f'{e} (pass --allow-single to search anyway)' if len(trace) == 1 else str(e))


@click.group()
@click.argument('trace_path', type=click.Path(exists=True, dir_okay=False, resolve_path=True), required=True)
@click.pass_context
def cli(ctx, trace_path: str|Path) -> None:
    """recover key2 and key3 of a TEA-variant half-round from traced observations"""
    trace_path = Path(trace_path)
    setup_logging(trace_path.with_suffix('.jsonl'))
    log_invocation()

    try:
        trace = ObservationTrace.load(trace_path)
    except (OSError, TraceFormatError) as e:
        log.error(e)
        raise click.ClickException(str(e))

    log.info(f"loaded {len(trace)} observations from {trace_path}")
    ctx.obj = GlobalArgs(trace, trace_path)


@cli.command()
@click.option('--all', 'find_all', is_flag=True, help="keep searching after the first valid key pair")
@click.option('--allow-single', is_flag=True, help="accept a trace with a single observation")
@click.option('--progress/--no-progress', default=False, help="show a progress bar for the brute force")
@click.pass_obj
def solve(obj: GlobalArgs, find_all: bool, allow_single: bool, progress: bool) -> None:
    """find a key pair consistent with all observations"""
    solver = make_solver(obj.trace, allow_single)
    click.echo(f'key2 bits determinable using initial fast solver: {fmt_bits(solver.solvable_bits)}')

    if find_all:
        matches = solver.solve_all(progress=progress)
    else:
        result = solver.solve(progress=progress)
        matches = [result] if isinstance(result, Found) else []

    if not matches:
        click.echo('valid key not found')
        sys.exit(1)

    for found in matches:
        click.echo(f'key2 key3: {found.key2:08x} {found.key3:08x}')


@cli.command()
@click.option('--allow-single', is_flag=True, help="accept a trace with a single observation")
@click.pass_obj
def bitmap(obj: GlobalArgs, allow_single: bool) -> None:
    """show which key2 bits the fast solver determines and from which observations"""
    solver = make_solver(obj.trace, allow_single)
    index = solver.index
    solvable_bits = solver.solvable_bits

    click.echo(f'solvable bits: {fmt_bits(solvable_bits)}')
    for n in range(len(index.refs)):
        if (solvable_bits >> n) & 1:
            pair = index[n]
            key_bit = (solver.partial_key.key2 >> n) & 1
            click.echo(f'bit {n:2d}: zero={pair.zero} one={pair.one} key2[{n}]={key_bit}')
        else:
            click.echo(f'bit {n:2d}: unsolved')


@cli.command()
@click.argument('key2', type=WORD)
@click.argument('key3', type=WORD)
@click.pass_obj
def verify(obj: GlobalArgs, key2: int, key3: int) -> None:
    """check a key pair against every observation"""
    accepted = obj.trace.verify_all(key2, key3)
    for idx, ok in enumerate(accepted):
        if not ok:
            log.info(f'observation {idx} rejects key2={key2:08x}, key3={key3:08x}: {obj.trace[idx]!r}')

    num_ok = int(accepted.sum())
    log.info(f'RESULT {num_ok}/{len(accepted)} observations accept key2={key2:08x}, key3={key3:08x}')
    click.echo(f'{num_ok}/{len(accepted)} observations accept the key pair')
    if num_ok != len(accepted):
        sys.exit(1)


@cli.command()
@click.pass_obj
def embed(obj: GlobalArgs) -> None:
    """launch an interactive IPython shell"""
    trace = obj.trace
    solver = make_solver(trace, allow_single=True)

    try:
        from IPython import start_ipython
    except ImportError:
        click.echo("Error: optional dependency IPython is required for this command", err=True)
        sys.exit(1)

    start_ipython(argv=[], user_ns=globals()|locals())


@click.command()
@click.argument('output_path', type=click.Path(dir_okay=False, writable=True))
@click.option('--key2', type=WORD, required=True)
@click.option('--key3', type=WORD, required=True)
@click.option('-n', '--num-observations', type=click.IntRange(min=1), default=8, help="number of half-rounds to record")
@click.option('--seed', type=int, default=None)
@click.option('--unchained', is_flag=True, help="draw b independently instead of chaining it from the previous b_prime")
def generate(output_path: str, key2: int, key3: int, num_observations: int, seed: int|None, unchained: bool) -> None:
    """write a synthetic trace for a known key pair (.txt or .npz)"""
    from teasolver.synthetic import generate_trace

    output_path = Path(output_path)
    setup_logging(output_path.with_suffix('.jsonl'))
    log_invocation()

    trace = generate_trace(key2, key3, num_observations, seed=seed, chained=not unchained)
    if output_path.suffix == '.npz':
        trace.save_npz(output_path)
    else:
        trace.save_txt(output_path)
    log.info(f'wrote {len(trace)} observations to {output_path}')


if __name__ == "__main__":
    cli()
