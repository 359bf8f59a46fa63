import sys

from embermug.cli import main

sys.exit(main())
