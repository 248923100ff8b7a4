import sys

from librarian.cli import main

sys.exit(main())
