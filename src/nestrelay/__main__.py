import sys

from nestrelay.cli import main

sys.exit(main())
