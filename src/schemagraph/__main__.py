import sys

from schemagraph.metadata.cli import main

sys.exit(main())
