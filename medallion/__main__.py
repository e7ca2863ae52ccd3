"""Allow `python -m medallion`."""
import sys

from medallion.cli import main

sys.exit(main())
