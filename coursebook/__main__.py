import sys

from coursebook.cli import main

sys.exit(main())
