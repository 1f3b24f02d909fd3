import sys

from piggybank.cli import main

sys.exit(main())
