import sys

from carzo_feed.cli import main

sys.exit(main())
