"""Entry point for `python -m move_prover`."""

import sys

from dotenv import load_dotenv

load_dotenv()

from move_prover.cli import main

if __name__ == "__main__":
    sys.exit(main())
