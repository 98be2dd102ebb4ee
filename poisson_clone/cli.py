"""
**Command Line Front End**

Runs one seamless clone from image files: loads source, mask and destination,
prints their dimensions, solves and saves the composite as
`Image-YYYY-MM-DD-HH-MM-SS.png`.

Example:
```bash
poisson-clone -s source.png -m mask.png -d destination.png --relaxation-factor 1.8
```

Exit status is 0 on success and 1 if an input cannot be loaded, the rasters
differ in size or the solver parameters are invalid.

Functions:
- build_parser(...)  - Argument parser with I/O and solver options.
- main(...)  - Entry point of the `poisson-clone` script.
"""



# ---------------
# >>> Imports <<<
# ---------------
from __future__ import annotations

import argparse
import sys

from . import img
from .solver import SolverConfig, solve



# -----------------
# >>> Arguments <<<
# -----------------

def _add_io_opts(p: argparse.ArgumentParser):
    p.add_argument("-s", "--source", default="source.png", help="Image whose content is cloned")
    p.add_argument("-m", "--mask", default="mask.png",
                   help="Binary mask, white (> 127) marks the cloning region")
    p.add_argument("-d", "--destination", default="destination.png", help="Image the source is cloned into")
    p.add_argument("-o", "--output-dir", default=".", help="Directory for the timestamped result")


def _add_solver_opts(p: argparse.ArgumentParser):
    """
    Solver controls. Defaults match SolverConfig.
    """
    defaults = SolverConfig()
    p.add_argument(
        "--max-iterations",
        type=int,
        default=defaults.max_iterations,
        help="Sweep budget. 500 gives a quick estimate, raise it if the result looks off."
    )
    p.add_argument(
        "--tolerance",
        type=float,
        default=defaults.tolerance,
        help="Stop once the largest change of a sweep drops below this."
    )
    p.add_argument(
        "--relaxation-factor",
        type=float,
        default=defaults.relaxation_factor,
        help="SOR weight (1 = plain Gauss-Seidel, 1.25-1.95 is faster, above 2 diverges)."
    )
    p.add_argument(
        "--guess-destination",
        action=argparse.BooleanOptionalAction,
        default=defaults.guess_destination,
        help="Seed the solve from destination colors instead of source colors"
    )
    p.add_argument(
        "--mixed-gradients",
        action=argparse.BooleanOptionalAction,
        default=defaults.mixed_gradients,
        help="Keep stronger destination gradients, useful for masks with holes or transparent sources"
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="poisson-clone",
        description="Poisson Image Editing: seamless cloning of a masked source into a destination."
    )
    _add_io_opts(p)
    _add_solver_opts(p)
    p.add_argument("-q", "--quiet", action="store_true", help="Only print the saved file name")
    return p




# -------------
# >>> Entry <<<
# -------------

def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    verbose = not args.quiet

    try:
        config = SolverConfig(
            max_iterations=args.max_iterations,
            tolerance=args.tolerance,
            relaxation_factor=args.relaxation_factor,
            guess_destination=args.guess_destination,
            mixed_gradients=args.mixed_gradients,
        )
    except ValueError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    if verbose:
        print(f"Setup called. @{img.get_current_timestamp()}")

    try:
        source = img.open(args.source)
        mask = img.open_mask(args.mask)
        destination = img.open(args.destination)
    except FileNotFoundError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        print("One or more images failed to load. Check file paths.", file=sys.stderr)
        return 1

    if verbose:
        for name, raster in (("Source", source), ("Destination", destination), ("Mask", mask)):
            width, height = img.get_width_height(raster)
            print(f"{name}: {width} x {height}")

    try:
        result = solve(source, mask, destination, config=config, should_print=verbose)
    except ValueError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    if verbose:
        print(f"Ended, seamless cloning completed. @{img.get_current_timestamp()}")

    path = img.save_timestamped(result, output_dir=args.output_dir)
    print(f"{path} saved")
    return 0


if __name__ == "__main__":
    sys.exit(main())
