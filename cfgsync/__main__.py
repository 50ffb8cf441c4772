import sys

from cfgsync.main import main

sys.exit(main())
