import sys

from linecast.cli import main

sys.exit(main())
