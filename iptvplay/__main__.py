import sys

from iptvplay.cli import main

sys.exit(main())
