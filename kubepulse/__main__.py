import sys

from kubepulse.app import main

sys.exit(main())
