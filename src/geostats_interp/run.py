from __future__ import annotations

import argparse

from .steps import STAGES, run_pipeline


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Interpolate scattered samples onto a regular grid.")
    parser.add_argument("--config", required=True, help="Path to config YAML.")
    parser.add_argument(
        "--stage",
        default="all",
        choices=list(STAGES),
        help="Pipeline stage to run.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    run_pipeline(args.config, stage=args.stage)


if __name__ == "__main__":
    main()
