import sys

from zeroinfl.cli import main

sys.exit(main())
