import sys

from boltzmann_brain.cli import main

sys.exit(main())
